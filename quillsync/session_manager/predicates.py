"""DOM readiness predicates for the chat surface.

Each predicate is a small JS function evaluated in the page with the
relevant selectors passed as its argument, so selector changes stay in
``constants.SELECTORS``.
"""

from __future__ import annotations

import logging
import sys
from typing import Protocol

from playwright.async_api import Page

from ..constants import SELECTORS

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


LOGIN_STATE_JS = """(sel) => {
    const button = document.querySelector(sel.primary) || document.querySelector(sel.alt);
    return button !== null && button.getAttribute('aria-expanded') === 'false';
}"""

SEND_READY_JS = """(sel) => {
    const btn = document.querySelector(sel);
    if (!btn) return false;
    const style = window.getComputedStyle(btn);
    return style.display !== 'none' && style.visibility !== 'hidden' &&
        !btn.disabled && !btn.classList.contains('disabled') &&
        btn.getAttribute('aria-disabled') !== 'true';
}"""

COMPLETION_JS = """(sel) => {
    const stop = document.querySelector(sel.stop);
    const response = document.querySelector(sel.response);
    return (!stop || window.getComputedStyle(stop).display === 'none') && response !== null;
}"""

_LOGIN_ARG = {"primary": SELECTORS["profile_button"], "alt": SELECTORS["profile_button_alt"]}


async def is_logged_in(page: Page) -> bool:
    """Check for the profile control that only signed-in users get."""
    return bool(await page.evaluate(LOGIN_STATE_JS, _LOGIN_ARG))


async def wait_for_login(page: Page) -> None:
    """Block until a human completes login in ``page``.

    No timeout: the wait ends only on success or cancellation.
    """
    await page.wait_for_function(LOGIN_STATE_JS, arg=_LOGIN_ARG, timeout=0)


async def wait_for_send_ready(page: Page, timeout_ms: int) -> None:
    """Wait until the send control is displayed and enabled."""
    await page.wait_for_function(SEND_READY_JS, arg=SELECTORS["send_button"], timeout=timeout_ms)


class CompletionPredicate(Protocol):
    """Decides when the model has finished streaming its reply."""

    async def wait(self, page: Page, timeout_ms: int) -> None:
        ...


class StopButtonCompletion:
    """Reply is done when the stop control is gone and a turn is rendered."""

    def __init__(self, stop_selector: str = SELECTORS["stop_button"],
                 response_selector: str = SELECTORS["conversation_turn"]):
        self._arg = {"stop": stop_selector, "response": response_selector}

    async def wait(self, page: Page, timeout_ms: int) -> None:
        await page.wait_for_function(COMPLETION_JS, arg=self._arg, timeout=timeout_ms)
        logger.info("Completion detected.")
