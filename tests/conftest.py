"""Pytest fixtures for QuillSync tests.

The browser is never launched: ``FakeLauncher`` hands ``BrowserSession`` a
``FakeBrowser`` whose pages simulate the chat surface. All pages of a test
share one ``FakeChat``, so replies, prompts and login state survive page
replacement and browser restarts the way they would on the real site.
"""

import os
import tempfile

# Keep ensure_dirs() and the default cookie path out of the working tree
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="quillsync-tests-"))

import asyncio
from typing import Callable, Optional, Union
from urllib.parse import urlparse

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from quillsync.constants import SELECTORS
from quillsync.session_manager.auth import Authenticator
from quillsync.session_manager.browser import BrowserSession
from quillsync.session_manager.cookies import CookieStore
from quillsync.session_manager.orchestrator import TranslationOrchestrator
from quillsync.session_manager.predicates import COMPLETION_JS, LOGIN_STATE_JS, SEND_READY_JS
from quillsync.session_manager.projects import _LIST_PROJECTS_JS, _SET_TEXTAREA_JS
from quillsync.session_manager.submission import CLEAR_JS, EXTRACT_JS, PASTE_JS, ChunkSubmitter

# A reply is the assistant text, an exception raised on send, or a callable
# run on send with the page that returns the text.
Reply = Union[str, BaseException, Callable[["FakePage"], str]]


class FakeChat:
    """State of the simulated chat surface shared by every page."""

    def __init__(self, replies: Optional[list[Reply]] = None, logged_in: bool = True):
        self.replies: list[Reply] = list(replies or [])
        self.prompts: list[str] = []
        self.visited: list[str] = []
        self.logged_in = logged_in
        self.accepts_cookies = False
        self.send_ready = True
        self.paste_accepted = True
        self.projects: list[dict] = []
        self.html_by_url: dict[str, str] = {}
        self.project_instructions = ""
        self.instructions_saved = False
        self.login_event = asyncio.Event()
        # When set, the login check only passes on pages of this host
        self.surface_host: Optional[str] = None
        self.input_visible = True
        # When set, replies are held back until the event fires
        self.completion_gate: Optional[asyncio.Event] = None
        self.replying = asyncio.Event()


class FakeElement:
    def __init__(self, on_click: Optional[Callable[[], None]] = None):
        self._on_click = on_click

    async def click(self, delay=None):
        if self._on_click:
            self._on_click()


class FakeKeyboard:
    def __init__(self, page: "FakePage"):
        self._page = page

    async def insert_text(self, text: str):
        self._page.pending = text


class FakePage:
    def __init__(self, context: "FakeContext", chat: FakeChat):
        self.context = context
        self.chat = chat
        self.keyboard = FakeKeyboard(self)
        self.closed = False
        self.url = "about:blank"
        self.reloads = 0
        self.pending = ""
        self.reply = ""

    def is_closed(self) -> bool:
        return self.closed

    def on_surface(self) -> bool:
        if self.chat.surface_host is None:
            return True
        host = urlparse(self.url).hostname or ""
        return host == self.chat.surface_host or host.endswith(f".{self.chat.surface_host}")

    async def close(self):
        self.closed = True

    def on(self, event, callback):
        pass

    async def goto(self, url, wait_until=None, timeout=None):
        self.url = url
        self.chat.visited.append(url)

    async def reload(self, wait_until=None, timeout=None):
        self.reloads += 1
        if self.context.added_cookies and self.chat.accepts_cookies:
            self.chat.logged_in = True

    async def content(self) -> str:
        return self.chat.html_by_url.get(self.url, "")

    async def bring_to_front(self):
        pass

    async def wait_for_selector(self, selector, state=None, timeout=None):
        if selector == SELECTORS["prompt_input"] and not self.chat.input_visible:
            raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")
        if selector == SELECTORS["instructions_save"]:
            return FakeElement(on_click=lambda: setattr(self.chat, "instructions_saved", True))
        return None

    async def focus(self, selector):
        pass

    async def query_selector_all(self, selector):
        return []

    async def eval_on_selector(self, selector, expression):
        return self.chat.project_instructions

    async def click(self, selector, delay=None):
        self.chat.prompts.append(self.pending)
        reply = self.chat.replies.pop(0) if self.chat.replies else ""
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(self)
        self.reply = reply

    async def evaluate(self, script, arg=None):
        if script == LOGIN_STATE_JS:
            return self.chat.logged_in and self.on_surface()
        if script == PASTE_JS:
            if self.chat.paste_accepted:
                self.pending = arg[1]
            return self.chat.paste_accepted
        if script == EXTRACT_JS:
            return self.reply
        if script == CLEAR_JS:
            self.pending = ""
            return None
        if script == _LIST_PROJECTS_JS:
            return list(self.chat.projects)
        if script == _SET_TEXTAREA_JS:
            self.chat.project_instructions = arg[1]
            return True
        return None

    async def wait_for_function(self, script, arg=None, timeout=None):
        if script == LOGIN_STATE_JS:
            await self.chat.login_event.wait()
            self.chat.logged_in = True
        elif script == SEND_READY_JS and not self.chat.send_ready:
            raise PlaywrightTimeoutError("Timeout waiting for send button")
        elif script == COMPLETION_JS:
            self.chat.replying.set()
            if self.chat.completion_gate is not None:
                await self.chat.completion_gate.wait()


class FakeContext:
    def __init__(self, chat: FakeChat):
        self.chat = chat
        self.browser: Optional["FakeBrowser"] = None
        self.pages: list[FakePage] = []
        self.added_cookies: list[dict] = []
        self.stored_cookies: list[dict] = []
        self.init_scripts: list[str] = []
        self.closed = False

    async def new_page(self) -> FakePage:
        page = FakePage(self, self.chat)
        self.pages.append(page)
        return page

    async def add_cookies(self, cookies):
        self.added_cookies.extend(cookies)

    async def cookies(self):
        return list(self.stored_cookies)

    def set_default_timeout(self, timeout):
        pass

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, context: FakeContext):
        self.context = context
        context.browser = self
        self.connected = True
        self._handlers: dict[str, list] = {}

    def is_connected(self) -> bool:
        return self.connected

    def on(self, event, callback):
        self._handlers.setdefault(event, []).append(callback)

    async def new_context(self, **kwargs) -> FakeContext:
        return self.context

    async def close(self):
        self.connected = False

    def crash(self):
        """Simulate the browser process dying."""
        self.connected = False
        for callback in self._handlers.get("disconnected", []):
            callback(self)


class FakeLauncher:
    """Stands in for ``launch_camoufox``."""

    def __init__(self, chat: FakeChat, fail: bool = False):
        self.chat = chat
        self.fail = fail
        self.browsers: list[FakeBrowser] = []
        self.headless: list[bool] = []

    async def __call__(self, headless: bool):
        self.headless.append(headless)
        if self.fail:
            raise RuntimeError("browser executable not found")
        browser = FakeBrowser(FakeContext(self.chat))
        self.browsers.append(browser)
        return None, browser

    @property
    def last_context(self) -> FakeContext:
        return self.browsers[-1].context


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def launcher(chat):
    return FakeLauncher(chat)


@pytest.fixture
def cookie_store(tmp_path):
    return CookieStore(tmp_path / "chat_cookies.json")


@pytest.fixture
def session(cookie_store, launcher):
    return BrowserSession(cookie_store=cookie_store, launcher=launcher)


@pytest.fixture
def authenticator(session):
    return Authenticator(session)


@pytest.fixture
def fast_submitter():
    return ChunkSubmitter(
        attempts=3, retry_delay=0, send_polls=2, send_poll_delay=0, settle_delay=0
    )


@pytest.fixture
def orchestrator(session, authenticator, fast_submitter):
    return TranslationOrchestrator(
        session, authenticator, submitter=fast_submitter, recovery_delay=0
    )


@pytest.fixture
def fake_page(chat):
    return FakePage(FakeContext(chat), chat)
