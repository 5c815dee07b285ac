"""Login state detection, cookie replay and the manual login fallback.

State flow for a page:

    Unauthenticated -> CookieReplay -> Authenticated
                                    -> ManualLoginPending -> Authenticated

Only ``manual_login`` waits without a bound; everything else uses the
configured navigation timeouts and fails closed.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional
from urllib.parse import urlparse

from playwright.async_api import Page
from playwright.async_api import Error as PlaywrightError

from ..config import BROWSER_TIMEOUT, RELOAD_TIMEOUT
from ..constants import CHAT_SURFACE_ORIGIN
from ..errors import AuthenticationError, QuillSyncError, SessionLostError
from ..models.job import new_request_id
from ..models.session import LoginResult
from .browser import BrowserSession, close_page, goto, is_browser_dead_error
from .predicates import is_logged_in, wait_for_login
from .projects import scan_projects

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class Authenticator:
    """Keeps pages of the shared session signed in to the chat surface."""

    def __init__(self, session: BrowserSession, origin: str = CHAT_SURFACE_ORIGIN):
        self.session = session
        self.origin = origin

    @property
    def cookie_store(self):
        return self.session.cookie_store

    def on_chat_surface(self, page: Page) -> bool:
        host = urlparse(self.origin).hostname or ""
        page_host = urlparse(page.url or "").hostname or ""
        return page_host == host or page_host.endswith(f".{host}")

    async def ensure_authenticated(self, page: Page, request_id: str = "") -> None:
        """Make sure ``page`` is signed in, falling back to manual login.

        A page that is not on the chat surface yet is sent to its origin
        first, so the login check and cookie replay see the real site.

        Raises:
            AuthenticationError: if manual login fails as well.
        """
        logger.info(f"Ensuring user is logged in for request {request_id}...")
        try:
            if not self.on_chat_surface(page):
                await goto(page, self.origin, timeout=BROWSER_TIMEOUT)
            if await is_logged_in(page):
                return

            cookies = self.cookie_store.load()
            if cookies:
                await page.context.add_cookies(cookies)
                await page.reload(wait_until="domcontentloaded", timeout=RELOAD_TIMEOUT)
                if await is_logged_in(page):
                    logger.info(f"Session restored from cookies for request {request_id}")
                    return
                logger.info(f"Cookies invalid for request {request_id}. Initiating manual login...")
            else:
                logger.info(f"No cookies found for request {request_id}. Initiating manual login...")

            result = await self.manual_login(request_id)
            if not result.success:
                raise AuthenticationError(result.message)

            # Manual login ran in the same context, so its cookies already apply
            await page.reload(wait_until="domcontentloaded", timeout=RELOAD_TIMEOUT)
            if not await is_logged_in(page):
                raise AuthenticationError(
                    "Login completed in another tab but this page is still signed out. "
                    "Please verify your chat login and try again."
                )
        except AuthenticationError:
            raise
        except PlaywrightError as e:
            if is_browser_dead_error(e):
                raise SessionLostError() from e
            logger.error(f"Error in ensure_authenticated for request {request_id}: {e}")
            raise AuthenticationError(
                f"Login check failed: {e}. Please verify your chat login or network."
            ) from e
        logger.info(f"User is now logged in for request {request_id}")

    async def manual_login(self, request_id: Optional[str] = None) -> LoginResult:
        """Open the chat surface and wait, without a timeout, for a human login.

        On success the full cookie set replaces the cookie file and the
        chat projects are scanned.
        """
        request_id = request_id or new_request_id()
        page = None
        if self.session.is_alive and self.session.headless:
            logger.warning(
                f"Manual login for request {request_id} opens in a headless browser; "
                "call /start to relaunch with a visible window."
            )
        try:
            logger.info(f"Initiating manual login for request {request_id}")
            page = await self.session.new_page(headless=False)
            await goto(page, self.origin, timeout=BROWSER_TIMEOUT)
            logger.info(f"Please log in manually at {self.origin} for request {request_id}")

            await wait_for_login(page)

            cookies = await page.context.cookies()
            self.cookie_store.save(cookies)
            logger.info(f"Cookies saved after manual login for request {request_id}")

            projects = await scan_projects(page, request_id)
            return LoginResult(
                success=True,
                message="Manual login completed. Cookies saved and projects scanned.",
                projects=projects,
            )
        except (PlaywrightError, QuillSyncError) as e:
            logger.error(f"Manual login error for request {request_id}: {e}")
            return LoginResult(
                success=False,
                message=f"Login failed: {e}. Please try again or check your network.",
            )
        finally:
            await close_page(page)

    async def verify_login(self, request_id: str = "") -> tuple[bool, str]:
        """Report whether saved cookies sign us in. Never writes cookies."""
        page = None
        try:
            page = await self.session.new_page()
            await goto(page, self.origin)
            if await is_logged_in(page):
                logger.info(f"Login verified successfully for request {request_id}")
                return True, "Login verified with saved cookies."
            logger.info(f"Login verification failed for request {request_id}")
            return False, (
                "Login verification failed. Cookies may be invalid or expired. "
                "Please log in manually."
            )
        finally:
            await close_page(page)
