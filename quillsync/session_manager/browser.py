"""Camoufox browser automation: launch, cookie restore, crash recovery."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Awaitable, Callable, Optional, TypeVar

from camoufox.async_api import AsyncCamoufox
from playwright.async_api import Browser, BrowserContext, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import BROWSER_HEADLESS, BROWSER_TIMEOUT, SESSION_RESTART_RETRIES
from ..constants import BROWSER_DEAD_PATTERNS, CHAT_SURFACE_ORIGIN
from ..errors import BrowserUnavailableError, SessionLostError
from .cookies import CookieStore

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

T = TypeVar("T")

# (closer, browser): closer is the Camoufox context manager, or None when the
# browser should be closed directly.
Launcher = Callable[[bool], Awaitable[tuple[Any, Browser]]]

HIDE_WEBDRIVER_JS = "Object.defineProperty(navigator, 'webdriver', { get: () => undefined });"


def is_browser_dead_error(exc: BaseException) -> bool:
    """Detect Playwright errors raised after the browser process went away."""
    msg = str(exc).lower()
    return any(p in msg for p in BROWSER_DEAD_PATTERNS)


async def launch_camoufox(headless: bool) -> tuple[Any, Browser]:
    camoufox = AsyncCamoufox(
        headless=headless,
        humanize=True,
        geoip=True,
        i_know_what_im_doing=True,
        config={"forceScopeAccess": True},
        disable_coop=True,
    )
    browser = await camoufox.__aenter__()
    return camoufox, browser


async def goto(page: Page, url: str, timeout: int = BROWSER_TIMEOUT):
    """Navigate, falling back to a commit-level wait on slow pages."""
    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
    except PlaywrightTimeoutError as e:
        logger.warning(f"Navigation to {url} timed out, trying with longer wait: {e}")
        await page.goto(url, wait_until="commit", timeout=timeout * 2)


async def close_page(page: Optional[Page]):
    """Close a page if it is still open. Safe on a dead browser."""
    if page is None or page.is_closed():
        return
    try:
        await page.close()
    except PlaywrightError as e:
        logger.warning(f"Error closing page: {e}")


class BrowserSession:
    """Owns the single browser process and its cookie-bearing context.

    Only this class creates or destroys the browser. Everything else asks it
    for pages.
    """

    def __init__(
        self,
        cookie_store: Optional[CookieStore] = None,
        launcher: Launcher = launch_camoufox,
        home_url: str = CHAT_SURFACE_ORIGIN,
    ):
        self.cookie_store = cookie_store or CookieStore()
        self._launcher = launcher
        self._home_url = home_url
        self._camoufox = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._lock = asyncio.Lock()
        self._needs_init = True
        self.launch_count = 0
        self.headless: Optional[bool] = None
        self.last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    @property
    def is_alive(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    @property
    def is_initialized(self) -> bool:
        return not self._needs_init

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise SessionLostError("Browser is not running.")
        return self._context

    def ensure_alive(self):
        if not self.is_alive:
            raise SessionLostError()

    async def acquire(self, headless: Optional[bool] = None) -> Browser:
        """Return the live browser, launching it first if needed.

        Concurrent callers wait on the same launch and get the same handle.
        """
        async with self._lock:
            if self.is_alive:
                return self._browser
            if self._browser is not None or self._camoufox is not None:
                await self._teardown()

            use_headless = headless if headless is not None else BROWSER_HEADLESS
            logger.info(f"Launching Camoufox (headless={use_headless})...")
            try:
                self._camoufox, self._browser = await self._launcher(use_headless)
                self.launch_count += 1
                self.headless = use_headless
                self._browser.on("disconnected", self._on_disconnected)

                self._context = await self._browser.new_context(
                    viewport={"width": 1366, "height": 768},
                )
                self._context.set_default_timeout(BROWSER_TIMEOUT)
                await self._context.add_init_script(HIDE_WEBDRIVER_JS)

                cookies = self.cookie_store.load()
                if cookies:
                    await self._context.add_cookies(cookies)
                    logger.info(f"Restored {len(cookies)} cookies into the browser context.")
                else:
                    logger.info("No saved cookies; ready for manual login.")

                page = await self._context.new_page()
                try:
                    await goto(page, self._home_url)
                    logger.info(f"Browser navigated to {self._home_url}")
                except PlaywrightError as e:
                    logger.warning(f"Settling navigation failed, continuing: {e}")
                finally:
                    await close_page(page)

                self._needs_init = False
                self.last_error = None
            except Exception as e:
                logger.error(f"Failed to start browser: {e}")
                self.last_error = str(e)
                await self._teardown()
                raise BrowserUnavailableError(
                    f"Browser unavailable: failed to start ({e}). "
                    "Check that Camoufox is installed (python -m camoufox fetch)."
                ) from e

            return self._browser

    async def new_page(self, headless: Optional[bool] = None) -> Page:
        """Open a page owned by the caller, who must close it."""
        await self.acquire(headless)
        try:
            page = await self.context.new_page()
        except PlaywrightError as e:
            if is_browser_dead_error(e) or not self.is_alive:
                raise SessionLostError() from e
            raise
        page.on("pageerror", lambda err: logger.debug(f"Page error: {err}"))
        return page

    async def with_session_restart(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int = SESSION_RESTART_RETRIES,
        request_id: str = "",
    ) -> T:
        """Run ``operation``, relaunching the browser if it died underneath.

        Failures unrelated to the session propagate unchanged.
        """
        for attempt in range(max_retries + 1):
            try:
                return await operation()
            except Exception as e:
                lost = (
                    isinstance(e, (SessionLostError, BrowserUnavailableError))
                    or is_browser_dead_error(e)
                    or not self.is_alive
                )
                logger.warning(
                    f"Operation failed for request {request_id}, "
                    f"attempt {attempt + 1}/{max_retries + 1}: {e}"
                )
                if not lost:
                    raise
                if attempt >= max_retries:
                    if isinstance(e, BrowserUnavailableError):
                        raise
                    raise BrowserUnavailableError() from e
                logger.info("Browser appears disconnected, restarting...")
                await self.reset()
        raise BrowserUnavailableError()  # unreachable with max_retries >= 0

    def _on_disconnected(self, _browser=None):
        logger.warning("Browser disconnected, resetting instance...")
        self._browser = None
        self._context = None
        self._needs_init = True

    async def ensure_headed(self):
        """Relaunch with a visible window if the live browser is headless."""
        async with self._lock:
            if self.is_alive and self.headless:
                logger.info("Relaunching the browser with a visible window for manual login...")
                await self._teardown()

    async def reset(self):
        """Drop the current browser so the next ``acquire`` relaunches."""
        async with self._lock:
            await self._teardown()

    async def stop(self):
        """Gracefully close the browser."""
        logger.info("Stopping browser session...")
        async with self._lock:
            await self._teardown()
        logger.info("Browser session stopped.")

    async def _teardown(self):
        self._needs_init = True
        try:
            if self._context is not None:
                await self._context.close()
        except Exception as e:
            logger.warning(f"Error closing context: {e}")
        finally:
            self._context = None

        try:
            if self._camoufox is not None:
                await self._camoufox.__aexit__(None, None, None)
            elif self._browser is not None:
                await self._browser.close()
        except Exception as e:
            logger.warning(f"Error closing browser: {e}")
        finally:
            self._camoufox = None
            self._browser = None
