"""Exception taxonomy shared by the session manager layers.

Every error carries a message that is safe to show to a caller: it names a
likely cause and never includes selectors or stack traces.
"""

from __future__ import annotations


class QuillSyncError(Exception):
    """Base class for all translation service errors."""

    default_message = "Unexpected translation service error."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class SessionLostError(QuillSyncError):
    """The browser disconnected while an operation was in flight (recoverable)."""

    default_message = "Browser session was lost. It will be relaunched on the next attempt."


class BrowserUnavailableError(QuillSyncError):
    """The browser could not be (re)launched within the restart budget."""

    default_message = (
        "Browser unavailable: it crashed or could not be relaunched. "
        "Check that the browser is installed and try again."
    )


class AuthenticationError(QuillSyncError):
    """Neither cookie replay nor manual login produced a signed-in session."""

    default_message = "Login failed. Please verify your chat login or network and try again."


class ChunkSubmissionError(QuillSyncError):
    """A single chunk could not be translated after its local retries."""

    default_message = (
        "The chat did not return a translation. The model may be overloaded "
        "or the network is slow."
    )


class JobFailedError(QuillSyncError):
    """The whole translation job had to stop."""

    default_message = "Translation job failed. Check your login or network and try again."


class ChapterFetchError(QuillSyncError):
    default_message = "Could not fetch the chapter. Check the URL and try again."
