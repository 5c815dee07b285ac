"""Drive a whole document through the chat surface, chunk by chunk.

Chunks are submitted strictly in source order on one page. A chunk that
fails gets one recovery cycle (reload, sign in again, retry); if that fails
too, a visible error block takes its place and the job moves on. Only
failures outside that envelope stop the job.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import AsyncIterator, Callable, Optional

from playwright.async_api import Page
from playwright.async_api import Error as PlaywrightError

from ..config import ERROR_PREVIEW_CHARS, RECOVERY_SETTLE_DELAY, RELOAD_TIMEOUT
from ..constants import ERROR_SECTION_END, ERROR_SECTION_START
from ..errors import ChunkSubmissionError, JobFailedError, QuillSyncError, SessionLostError
from ..models.events import ChunkErrorEvent, EndEvent, ProgressEvent, StreamEvent
from ..models.job import ChunkResult, JobStatus, TranslateRequest, TranslationJob
from ..text.chunker import chunk_text, count_words
from ..text.glossary import apply_glossary
from .auth import Authenticator
from .browser import BrowserSession, close_page, goto, is_browser_dead_error
from .submission import ChunkSubmitter

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def error_block(chunk: str) -> str:
    """Placeholder recorded in the output for a chunk that could not be translated."""
    return f"{ERROR_SECTION_START}\n{chunk[:ERROR_PREVIEW_CHARS]}...\n{ERROR_SECTION_END}"


class TranslationOrchestrator:
    """Turns a ``TranslateRequest`` into a stream of job events."""

    def __init__(
        self,
        session: BrowserSession,
        authenticator: Authenticator,
        submitter: Optional[ChunkSubmitter] = None,
        chunker: Callable[[str, str, int], list[str]] = chunk_text,
        glossary: Callable = apply_glossary,
        recovery_delay: float = RECOVERY_SETTLE_DELAY,
    ):
        self.session = session
        self.authenticator = authenticator
        self.submitter = submitter or ChunkSubmitter()
        self._chunker = chunker
        self._glossary = glossary
        self.recovery_delay = recovery_delay

    def _split(self, request: TranslateRequest) -> list[str]:
        try:
            text = request.text
            if request.glossary:
                text = self._glossary(text, request.glossary)
            return self._chunker(text, request.chunk_strategy, request.chunk_size)
        except Exception as e:
            raise JobFailedError(f"Could not split the text into chunks: {e}") from e

    async def _open_page(self, url: str, request_id: str) -> Page:
        """Open this job's page on the chat surface and sign it in."""

        async def open_page() -> Page:
            page = await self.session.new_page()
            try:
                await goto(page, url)
                await self.authenticator.ensure_authenticated(page, request_id)
                return page
            except BaseException:
                await close_page(page)
                raise

        try:
            page = await self.session.with_session_restart(open_page, request_id=request_id)
        except QuillSyncError as e:
            raise JobFailedError(e.message) from e
        except PlaywrightError as e:
            raise JobFailedError(
                f"Could not open the chat page ({e}). Check the chat URL and your network."
            ) from e
        logger.info(f"Initialized new page for translation request {request_id}")
        return page

    async def _recover(self, page: Page, url: str, request_id: str) -> Page:
        """Reload and re-authenticate, or replace the page if the browser died."""
        if self.session.is_alive and not page.is_closed():
            try:
                await page.reload(wait_until="domcontentloaded", timeout=RELOAD_TIMEOUT)
                await self.authenticator.ensure_authenticated(page, request_id)
                return page
            except SessionLostError:
                pass
            except PlaywrightError as e:
                if self.session.is_alive and not is_browser_dead_error(e):
                    raise ChunkSubmissionError(
                        "Reloading the chat page failed. Check your network."
                    ) from e

        logger.warning(f"Session lost during request {request_id}, opening a fresh page...")
        await close_page(page)
        return await self._open_page(url, request_id)

    async def _translate_chunk(
        self, page: Page, chunk: str, request: TranslateRequest, job: TranslationJob
    ) -> tuple[Page, Optional[ChunkResult], str]:
        index = job.current_index + 1
        try:
            result = await self.submitter.submit(page, chunk, request.prompt_prefix, job.id)
            return page, result, ""
        except ChunkSubmissionError as e:
            logger.error(f"Error translating chunk {index} for request {job.id}: {e}")

        try:
            page = await self._recover(page, request.chat_surface_url, job.id)
            await asyncio.sleep(self.recovery_delay)
            result = await self.submitter.submit(page, chunk, request.prompt_prefix, job.id)
            return page, result.model_copy(
                update={"attempts": result.attempts + self.submitter.attempts}
            ), ""
        except JobFailedError:
            # No page could be reopened, so later chunks cannot run either
            raise
        except QuillSyncError as e:
            logger.error(f"Retry for chunk {index} also failed for request {job.id}: {e}")
            return page, None, e.message

    async def run(self, job: TranslationJob, request: TranslateRequest) -> AsyncIterator[StreamEvent]:
        """Yield one ``ProgressEvent`` or ``ChunkErrorEvent`` per chunk, then ``EndEvent``.

        Raises:
            JobFailedError: when the job cannot continue at all.
        """
        page: Optional[Page] = None
        job.status = JobStatus.RUNNING
        try:
            job.chunks = self._split(request)
            if not job.chunks:
                raise JobFailedError("No text to translate after chunking.")
            total = len(job.chunks)
            logger.info(f"Chunking complete: {total} chunk(s) for request {job.id}")

            page = await self._open_page(request.chat_surface_url, job.id)

            total_words = sum(count_words(c) for c in job.chunks) or 1
            processed_words = 0

            for i, chunk in enumerate(job.chunks):
                job.current_index = i
                logger.info(f"Processing chunk {i + 1} of {total} for request {job.id}")
                page, result, error = await self._translate_chunk(page, chunk, request, job)
                processed_words += count_words(chunk)

                if result is not None:
                    job.record(result)
                    yield ProgressEvent(
                        partial=job.accumulated_output,
                        chunk=i + 1,
                        total=total,
                        progress=min(processed_words / total_words * 100, 100.0),
                    )
                else:
                    job.status = JobStatus.CHUNK_FAILED
                    job.record(ChunkResult(
                        text=error_block(chunk), succeeded=False, attempts=self.submitter.attempts * 2
                    ))
                    yield ChunkErrorEvent(
                        error=f"Error translating chunk {i + 1}: {error} Continuing with next chunk.",
                        request_id=job.id,
                    )
                    job.status = JobStatus.RUNNING

            job.status = JobStatus.COMPLETED
            logger.info(f"Translation completed for request {job.id}")
            yield EndEvent(translation=job.accumulated_output, request_id=job.id)

        except (GeneratorExit, asyncio.CancelledError):
            if not job.is_terminal:
                job.status = JobStatus.ABORTED
                logger.warning(f"Translation request {job.id} aborted by the caller")
            raise
        except JobFailedError:
            job.status = JobStatus.ABORTED
            raise
        except Exception as e:
            job.status = JobStatus.ABORTED
            logger.error(f"Unexpected error in request {job.id}: {e}", exc_info=True)
            raise JobFailedError(
                "Translation stopped unexpectedly. Check your login or network and try again."
            ) from e
        finally:
            await close_page(page)
