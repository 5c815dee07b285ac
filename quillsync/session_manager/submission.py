"""Submit one chunk through the chat composer and read back the reply."""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from typing import Optional

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import (
    CHUNK_ATTEMPTS,
    CHUNK_RETRY_DELAY,
    INPUT_TIMEOUT,
    RESPONSE_TIMEOUT,
    SEND_BUTTON_POLL_DELAY,
    SEND_BUTTON_POLL_TIMEOUT,
    SEND_BUTTON_POLLS,
    SETTLE_DELAY,
)
from ..constants import SELECTORS
from ..errors import ChunkSubmissionError
from ..models.job import ChunkResult
from .predicates import CompletionPredicate, StopButtonCompletion, wait_for_send_ready

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


# Dispatches a synthetic paste so the editor receives the prompt in one
# insertion, like a real Ctrl+V.
PASTE_JS = """([selector, text]) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    el.focus();
    const data = new DataTransfer();
    data.setData('text/plain', text);
    el.dispatchEvent(new ClipboardEvent('paste', {
        clipboardData: data, bubbles: true, cancelable: true,
    }));
    const current = 'value' in el ? el.value : el.innerText;
    return (current || '').trim().length > 0;
}"""

EXTRACT_JS = """(sel) => {
    const lastTurn = document.querySelector(sel.lastTurn);
    if (!lastTurn) return '';
    lastTurn.scrollIntoView();
    const message = lastTurn.querySelector(sel.message);
    return message ? message.innerText.trim() : '';
}"""

CLEAR_JS = """(selector) => {
    const editor = document.querySelector(selector);
    if (!editor) return;
    if ('value' in editor) {
        editor.value = '';
    } else {
        editor.innerHTML = '';
    }
    editor.dispatchEvent(new Event('input', { bubbles: true }));
}"""


def build_prompt(prompt_prefix: str, chunk: str) -> str:
    return f"{prompt_prefix} {chunk}"


class ChunkSubmitter:
    """Runs the composer protocol for one chunk with bounded retries.

    Recovery such as reloading the page or signing in again is left to the
    caller; between attempts the page is not touched.
    """

    def __init__(
        self,
        completion: Optional[CompletionPredicate] = None,
        attempts: int = CHUNK_ATTEMPTS,
        retry_delay: float = CHUNK_RETRY_DELAY,
        send_polls: int = SEND_BUTTON_POLLS,
        send_poll_delay: float = SEND_BUTTON_POLL_DELAY,
        settle_delay: float = SETTLE_DELAY,
    ):
        self.completion = completion or StopButtonCompletion()
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.send_polls = send_polls
        self.send_poll_delay = send_poll_delay
        self.settle_delay = settle_delay

    async def submit(
        self, page: Page, chunk: str, prompt_prefix: str, request_id: str = ""
    ) -> ChunkResult:
        """Translate ``chunk``.

        Raises:
            ChunkSubmissionError: after the last failed attempt.
        """
        if not isinstance(chunk, str) or not chunk.strip():
            raise ChunkSubmissionError("Invalid or empty chunk provided for translation.")
        if page is None or page.is_closed():
            raise ChunkSubmissionError("Browser page closed unexpectedly.")

        prompt = build_prompt(prompt_prefix, chunk)
        started = time.monotonic()
        last_error: Exception | None = None

        for attempt in range(1, self.attempts + 1):
            try:
                logger.info(f"Translating chunk for request {request_id}: {prompt[:50]}...")
                text = await self._attempt(page, prompt, request_id)
                logger.info(
                    f"Translation retrieved for request {request_id}: {text[:50]}... "
                    f"(took {time.monotonic() - started:.1f}s)"
                )
                return ChunkResult(text=text, succeeded=True, attempts=attempt)
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Translation attempt {attempt}/{self.attempts} failed "
                    f"for request {request_id}: {e}"
                )
                if page.is_closed():
                    break
                if attempt < self.attempts:
                    await asyncio.sleep(self.retry_delay)

        raise ChunkSubmissionError(self._describe(last_error)) from last_error

    async def _attempt(self, page: Page, prompt: str, request_id: str) -> str:
        await page.bring_to_front()
        try:
            await page.wait_for_selector(
                SELECTORS["prompt_input"], state="visible", timeout=INPUT_TIMEOUT
            )
        except PlaywrightTimeoutError as e:
            raise ChunkSubmissionError("The chat input never appeared.") from e

        await self._inject(page, prompt)
        await self._wait_for_send_button(page)

        await page.click(SELECTORS["send_button"], delay=500)
        logger.info(f"Send button clicked for request {request_id}")

        try:
            await self.completion.wait(page, RESPONSE_TIMEOUT)
        except PlaywrightTimeoutError as e:
            raise ChunkSubmissionError("The chat did not finish replying in time.") from e

        await asyncio.sleep(self.settle_delay)
        text = await page.evaluate(
            EXTRACT_JS,
            {"lastTurn": SELECTORS["last_turn"], "message": SELECTORS["assistant_message"]},
        )
        if not text:
            raise ChunkSubmissionError("No translation response received from the chat.")

        await page.evaluate(CLEAR_JS, SELECTORS["prompt_input"])
        await asyncio.sleep(self.settle_delay)
        return text

    async def _inject(self, page: Page, prompt: str):
        await page.focus(SELECTORS["prompt_input"])
        pasted = await page.evaluate(PASTE_JS, [SELECTORS["prompt_input"], prompt])
        if not pasted:
            logger.info("Editor ignored the paste event, inserting text directly.")
            await page.keyboard.insert_text(prompt)

    async def _wait_for_send_button(self, page: Page):
        for poll in range(self.send_polls):
            try:
                await wait_for_send_ready(page, SEND_BUTTON_POLL_TIMEOUT)
                return
            except PlaywrightTimeoutError:
                logger.info(f"Poll {poll + 1}/{self.send_polls} waiting for send button failed")
                await asyncio.sleep(self.send_poll_delay)
        raise ChunkSubmissionError("Send button not available after multiple attempts.")

    def _describe(self, error: Optional[Exception]) -> str:
        if isinstance(error, ChunkSubmissionError):
            reason = error.message
        else:
            reason = "The browser reported an error while talking to the chat."
        return f"Chunk translation failed. {reason} The model may be overloaded or the network slow."
