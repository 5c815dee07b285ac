"""Tests for single-chunk submission through the chat composer."""

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from quillsync.errors import ChunkSubmissionError
from quillsync.session_manager.submission import ChunkSubmitter, build_prompt


class RecordingCompletion:
    """Completion signal that either finishes at once or always times out."""

    def __init__(self, finishes: bool = True):
        self.finishes = finishes
        self.calls = 0

    async def wait(self, page, timeout_ms):
        self.calls += 1
        if not self.finishes:
            raise PlaywrightTimeoutError(f"Timeout {timeout_ms}ms exceeded.")


def submitter_with(completion):
    return ChunkSubmitter(
        completion=completion, attempts=3, retry_delay=0, send_polls=2, send_poll_delay=0, settle_delay=0
    )


class TestBuildPrompt:
    def test_prefix_and_chunk_are_joined_by_a_space(self):
        assert build_prompt("Translate:", "第1章 开始") == "Translate: 第1章 开始"


class TestChunkSubmitter:
    @pytest.mark.asyncio
    async def test_returns_reply_on_first_attempt(self, chat, fake_page, fast_submitter):
        # Given
        chat.replies = ["Chapter 1: The Beginning"]

        # When
        result = await fast_submitter.submit(fake_page, "第1章 开始", "Translate:", "request-1")

        # Then
        assert result.text == "Chapter 1: The Beginning"
        assert result.succeeded
        assert result.attempts == 1
        assert chat.prompts == ["Translate: 第1章 开始"]

    @pytest.mark.asyncio
    async def test_retries_after_empty_reply(self, chat, fake_page, fast_submitter):
        chat.replies = ["", "", "done"]

        result = await fast_submitter.submit(fake_page, "内容", "Translate:")

        assert result.text == "done"
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_retries_after_browser_error(self, chat, fake_page, fast_submitter):
        chat.replies = [PlaywrightError("Element is not attached to the DOM"), "ok"]

        result = await fast_submitter.submit(fake_page, "内容", "Translate:")

        assert result.text == "ok"
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_raises_after_last_attempt(self, chat, fake_page, fast_submitter):
        # Given: The chat never answers
        chat.replies = ["", "", "", "never reached"]

        # When/Then
        with pytest.raises(ChunkSubmissionError, match="No translation response"):
            await fast_submitter.submit(fake_page, "内容", "Translate:")
        assert len(chat.prompts) == 3

    @pytest.mark.asyncio
    async def test_send_button_never_ready(self, chat, fake_page, fast_submitter):
        chat.send_ready = False

        with pytest.raises(ChunkSubmissionError, match="Send button not available"):
            await fast_submitter.submit(fake_page, "内容", "Translate:")
        assert chat.prompts == []

    @pytest.mark.asyncio
    async def test_empty_chunk_is_rejected_without_touching_the_page(self, chat, fake_page, fast_submitter):
        with pytest.raises(ChunkSubmissionError, match="empty chunk"):
            await fast_submitter.submit(fake_page, "   ", "Translate:")
        assert chat.prompts == []

    @pytest.mark.asyncio
    async def test_closed_page_is_rejected(self, fake_page, fast_submitter):
        fake_page.closed = True

        with pytest.raises(ChunkSubmissionError, match="closed"):
            await fast_submitter.submit(fake_page, "内容", "Translate:")

    @pytest.mark.asyncio
    async def test_page_closing_mid_attempt_stops_retrying(self, chat, fake_page, fast_submitter):
        # Given: The page closes while the first prompt is being sent
        def close_page(page):
            page.closed = True
            raise PlaywrightError("Target page, context or browser has been closed")

        chat.replies = [close_page, "unused"]

        # When/Then
        with pytest.raises(ChunkSubmissionError):
            await fast_submitter.submit(fake_page, "内容", "Translate:")
        assert len(chat.prompts) == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_typing_when_paste_is_ignored(self, chat, fake_page, fast_submitter):
        chat.paste_accepted = False
        chat.replies = ["typed"]

        result = await fast_submitter.submit(fake_page, "内容", "Translate:")

        assert result.text == "typed"
        assert chat.prompts == ["Translate: 内容"]

    @pytest.mark.asyncio
    async def test_composer_is_cleared_after_reply(self, chat, fake_page, fast_submitter):
        chat.replies = ["ok"]

        await fast_submitter.submit(fake_page, "内容", "Translate:")

        assert fake_page.pending == ""

    @pytest.mark.asyncio
    async def test_input_that_never_appears_fails_every_attempt(self, chat, fake_page, fast_submitter):
        # Given: The composer is never rendered
        chat.input_visible = False

        # When/Then
        with pytest.raises(ChunkSubmissionError, match="chat input never appeared"):
            await fast_submitter.submit(fake_page, "内容", "Translate:")
        assert chat.prompts == []


class TestCompletionPredicate:
    @pytest.mark.asyncio
    async def test_custom_predicate_decides_when_the_reply_is_read(self, chat, fake_page):
        completion = RecordingCompletion()
        chat.replies = ["done"]

        result = await submitter_with(completion).submit(fake_page, "内容", "Translate:")

        assert result.text == "done"
        assert completion.calls == 1

    @pytest.mark.asyncio
    async def test_completion_timeout_is_retried_then_reported(self, chat, fake_page):
        # Given: The reply never finishes
        completion = RecordingCompletion(finishes=False)
        chat.replies = ["partial", "partial", "partial"]

        # When
        with pytest.raises(ChunkSubmissionError) as exc_info:
            await submitter_with(completion).submit(fake_page, "内容", "Translate:")

        # Then: Each attempt waited once and the timeout surfaced as a chunk failure
        assert completion.calls == 3
        assert len(chat.prompts) == 3
        assert "did not finish replying in time" in exc_info.value.message
        assert not isinstance(exc_info.value, PlaywrightTimeoutError)
