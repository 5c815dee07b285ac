"""Translation Session Manager HTTP service.

Runs as a lightweight local web server that owns the single browser
session and exposes it to callers.

Endpoints:
    POST /start                - Manual login; saves cookies, scans projects
    GET  /verify-login         - Check whether saved cookies sign us in
    GET  /status               - Return session state
    POST /stop                 - Close the browser
    POST /fetch-chapter        - Fetch one or more chapters from a novel site
    GET  /clear-cache          - Forget cached chapters (POST also accepted)
    POST /chunk-and-translate  - Translate a document, streamed as SSE
    POST /update-instructions  - Replace a chat project's instructions
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from aiohttp import web
from playwright.async_api import Error as PlaywrightError
from pydantic import ValidationError

from ..config import LOG_DIR, LOG_MAX_BYTES, SERVICE_HOST, SERVICE_PORT, ensure_dirs
from ..errors import ChapterFetchError, JobFailedError, QuillSyncError
from ..models.chapter import FetchChapterRequest
from ..models.events import FatalErrorEvent, StartEvent
from ..models.job import TranslateRequest, TranslationJob, new_request_id
from ..models.session import SessionStatus
from .auth import Authenticator
from .browser import BrowserSession, close_page
from .chapters import ChapterFetcher
from .orchestrator import TranslationOrchestrator
from .projects import update_instructions
from .streaming import EventStream

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class SessionManager:
    """Wires the browser session to the services that share it.

    Pass collaborators in to replace the real browser in tests.
    """

    def __init__(
        self,
        session: Optional[BrowserSession] = None,
        authenticator: Optional[Authenticator] = None,
        orchestrator: Optional[TranslationOrchestrator] = None,
        chapters: Optional[ChapterFetcher] = None,
    ):
        self.session = session or BrowserSession()
        self.authenticator = authenticator or Authenticator(self.session)
        self.orchestrator = orchestrator or TranslationOrchestrator(self.session, self.authenticator)
        self.chapters = chapters or ChapterFetcher(self.session)

    async def setup(self):
        ensure_dirs()

    async def warm_up(self):
        """Launch the browser ahead of the first request."""
        try:
            await self.session.acquire()
        except QuillSyncError as e:
            logger.error(f"Failed to initialize browser on server start: {e}")

    async def cleanup(self):
        await self.session.stop()

    def status(self) -> SessionStatus:
        if self.session.is_alive:
            state = "running"
            mode = "headless" if self.session.headless else "visible"
            message = f"Browser running ({mode})."
        elif self.session.is_running:
            state = "disconnected"
            message = "Browser disconnected; it relaunches on the next request."
        else:
            state = "not_running"
            message = "Browser not running; it launches on the next request."
        return SessionStatus(
            is_active=self.session.is_alive,
            state=state,
            cookie_count=len(self.session.cookie_store.load()),
            cached_chapters=self.chapters.cache_size,
            message=message,
            error=self.session.last_error,
        )


async def _read_body(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise web.HTTPBadRequest(
            text=json.dumps({"success": False, "message": f"Invalid JSON body: {e}"}),
            content_type="application/json",
        )
    return body if isinstance(body, dict) else {}


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    return str(first.get("msg", "Invalid request.")).removeprefix("Value error, ")


# ── HTTP Handlers ────────────────────────────────────────────────────────────


async def handle_start(request: web.Request) -> web.Response:
    mgr: SessionManager = request.app["manager"]
    request_id = request.query.get("requestId") or new_request_id()
    await mgr.session.ensure_headed()
    result = await mgr.authenticator.manual_login(request_id)
    return web.json_response(result.model_dump())


async def handle_verify_login(request: web.Request) -> web.Response:
    mgr: SessionManager = request.app["manager"]
    request_id = request.query.get("requestId") or new_request_id()
    try:
        success, message = await mgr.authenticator.verify_login(request_id)
    except (QuillSyncError, PlaywrightError) as e:
        logger.error(f"Verification error for request {request_id}: {e}")
        success, message = False, f"Verification failed: {e}. Please check your chat login or network."
    return web.json_response({"success": success, "message": message})


async def handle_status(request: web.Request) -> web.Response:
    mgr: SessionManager = request.app["manager"]
    return web.json_response(mgr.status().model_dump())


async def handle_stop(request: web.Request) -> web.Response:
    mgr: SessionManager = request.app["manager"]
    await mgr.session.stop()
    return web.json_response({"message": "Browser stopped. Saved cookies remain available."})


async def handle_fetch_chapter(request: web.Request) -> web.Response:
    mgr: SessionManager = request.app["manager"]
    body = await _read_body(request)
    try:
        params = FetchChapterRequest.model_validate(body)
    except ValidationError as e:
        return web.json_response({"success": False, "message": _validation_message(e)}, status=400)

    request_id = new_request_id("fetch")
    try:
        if params.count > 1:
            chapter = await mgr.chapters.fetch_many(params.url, params.count, request_id)
        else:
            chapter = await mgr.chapters.fetch(params.url, request_id)
    except ChapterFetchError as e:
        return web.json_response({"success": False, "message": e.message})

    return web.json_response({"success": True, **chapter.model_dump(by_alias=True)})


async def handle_clear_cache(request: web.Request) -> web.Response:
    mgr: SessionManager = request.app["manager"]
    mgr.chapters.clear_cache()
    return web.json_response({"success": True, "message": "Chapter cache cleared successfully."})


async def handle_update_instructions(request: web.Request) -> web.Response:
    mgr: SessionManager = request.app["manager"]
    body = await _read_body(request)
    project_href = (body.get("projectHref") or "").strip()
    new_instructions = body.get("newInstructions")
    if not project_href or not isinstance(new_instructions, str):
        return web.json_response(
            {"success": False, "message": "projectHref and newInstructions are required."},
            status=400,
        )

    request_id = new_request_id("update")
    page = None
    try:
        logger.info(f"Updating instructions for project {project_href} for request {request_id}")
        page = await mgr.session.new_page()
        await mgr.authenticator.ensure_authenticated(page, request_id)
        await update_instructions(page, project_href, new_instructions)
        return web.json_response({"success": True, "message": "Project instructions updated successfully."})
    except (QuillSyncError, PlaywrightError, RuntimeError) as e:
        logger.error(f"Update instructions failed for request {request_id}: {e}")
        return web.json_response(
            {"success": False, "message": f"Update failed: {e}. Please try again or check your network."},
            status=500,
        )
    finally:
        await close_page(page)


async def handle_chunk_and_translate(request: web.Request) -> web.StreamResponse:
    mgr: SessionManager = request.app["manager"]
    body = await _read_body(request)
    try:
        params = TranslateRequest.model_validate(body)
    except ValidationError as e:
        return web.json_response({"error": _validation_message(e)}, status=400)

    job = TranslationJob(id=new_request_id())
    stream = EventStream(request)
    await stream.open()
    await stream.send(StartEvent(request_id=job.id))

    events = mgr.orchestrator.run(job, params)
    try:
        async for event in events:
            if not await stream.send(event):
                break
    except JobFailedError as e:
        logger.error(f"Error in /chunk-and-translate for request {job.id}: {e}")
        await stream.send(FatalErrorEvent(error=e.message, request_id=job.id))
    except Exception as e:
        logger.error(f"Unexpected error in /chunk-and-translate for request {job.id}: {e}", exc_info=True)
        await stream.send(FatalErrorEvent(
            error="Translation stopped unexpectedly. Please try again.", request_id=job.id
        ))
    finally:
        await events.aclose()
        await stream.close()
        logger.info(f"Translation request {job.id} finished with status {job.status.value}")

    return stream.response


# ── App Factory ──────────────────────────────────────────────────────────────


def setup_file_logging():
    """Mirror the package's log records to a rotating file."""
    ensure_dirs()
    package_logger = logging.getLogger("quillsync")
    if any(isinstance(h, RotatingFileHandler) for h in package_logger.handlers):
        return
    file_handler = RotatingFileHandler(
        LOG_DIR / "quillsync.log", maxBytes=LOG_MAX_BYTES, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    package_logger.addHandler(file_handler)


def create_app(manager: Optional[SessionManager] = None, warm_start: bool = False) -> web.Application:
    app = web.Application(client_max_size=50 * 1024 * 1024)

    async def on_startup(app: web.Application):
        mgr = manager or SessionManager()
        await mgr.setup()
        app["manager"] = mgr
        if warm_start:
            app["warm_up"] = asyncio.create_task(mgr.warm_up())
        logger.info(f"Translation service started on {SERVICE_HOST}:{SERVICE_PORT}")

    async def on_cleanup(app: web.Application):
        warm_up = app.get("warm_up")
        if warm_up is not None and not warm_up.done():
            warm_up.cancel()
        mgr: SessionManager = app["manager"]
        await mgr.cleanup()
        logger.info("Translation service stopped.")

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    app.router.add_post("/start", handle_start)
    app.router.add_get("/verify-login", handle_verify_login)
    app.router.add_get("/status", handle_status)
    app.router.add_post("/stop", handle_stop)
    app.router.add_post("/fetch-chapter", handle_fetch_chapter)
    app.router.add_get("/clear-cache", handle_clear_cache)
    app.router.add_post("/clear-cache", handle_clear_cache)
    app.router.add_post("/chunk-and-translate", handle_chunk_and_translate)
    app.router.add_post("/update-instructions", handle_update_instructions)

    return app


def main():
    """Run the session manager as a standalone HTTP service."""
    setup_file_logging()
    app = create_app(warm_start=True)
    # A client hang-up cancels its handler, which aborts any running job
    web.run_app(app, host=SERVICE_HOST, port=SERVICE_PORT, handler_cancellation=True)


if __name__ == "__main__":
    main()
