"""MCP Server entry point for the QuillSync novel translation service.

Exposes tools to Claude-compatible clients via the Model Context Protocol:
- Session management: start_session, verify_login, session_status, stop_session
- Chapters: fetch_chapter, clear_chapter_cache
- Translation: translate_text, update_project_instructions

The translation service (aiohttp on localhost:3003) is auto-started as part
of the MCP server lifecycle, no separate process needed.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from aiohttp.web import AppRunner, TCPSite
from mcp.server.fastmcp import FastMCP

from .config import SERVICE_HOST, SERVICE_PORT, ensure_dirs
from .tools.session_tools import session_status, start_session, stop_session, verify_login
from .tools.translation_tools import (
    clear_chapter_cache,
    fetch_chapter,
    translate_text,
    update_project_instructions,
)

# Configure logging to stderr (stdout is reserved for MCP JSON-RPC)
logging.basicConfig(
    stream=sys.stderr,
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("quillsync")

# Ensure data directories exist
ensure_dirs()


# ── Lifespan: auto-start translation service ─────────────────────────────────


@asynccontextmanager
async def lifespan(server: FastMCP):
    """Start the translation service alongside the MCP server."""
    from .session_manager.manager import create_app, setup_file_logging

    setup_file_logging()
    app = create_app(warm_start=True)
    runner = AppRunner(app, handler_cancellation=True)
    await runner.setup()
    site = TCPSite(runner, SERVICE_HOST, SERVICE_PORT)
    managed = False
    try:
        await site.start()
        logger.info("Translation service auto-started on %s:%s", SERVICE_HOST, SERVICE_PORT)
        managed = True
    except OSError:
        # Port already in use, assume the service was started manually
        logger.info("Translation service already running on %s:%s", SERVICE_HOST, SERVICE_PORT)
        await runner.cleanup()

    try:
        yield {}
    finally:
        if managed:
            await runner.cleanup()
            logger.info("Translation service stopped.")


# ── MCP Server ───────────────────────────────────────────────────────────────

mcp = FastMCP(
    "quillsync",
    lifespan=lifespan,
    instructions=(
        "QuillSync - Translate web novels through a signed-in chat session. "
        "The translation service starts automatically with this server. "
        "Call verify_login to check whether saved cookies still work; "
        "if not, call start_session and log in in the browser window. "
        "Use fetch_chapter to pull chapter text from a novel site, then "
        "translate_text to translate it chunk by chunk with an optional glossary."
    ),
)


# ── Session Management Tools ─────────────────────────────────────────────────


@mcp.tool()
async def tool_start_session() -> str:
    """Open the chat surface for manual login.

    Blocks until the user has signed in, then saves cookies and lists
    the chat projects with their instructions.
    """
    return await start_session()


@mcp.tool()
async def tool_verify_login() -> str:
    """Check whether saved cookies still sign in. Never overwrites cookies."""
    return await verify_login()


@mcp.tool()
async def tool_session_status() -> str:
    """Check if the browser session is running.

    Returns: browser state, saved cookie count, cached chapters.
    """
    return await session_status()


@mcp.tool()
async def tool_stop_session() -> str:
    """Close the browser. Saved cookies remain available."""
    return await stop_session()


# ── Chapter Tools ────────────────────────────────────────────────────────────


@mcp.tool()
async def tool_fetch_chapter(url: str, count: int = 1) -> str:
    """Fetch a chapter from a supported novel site.

    Results are cached by URL until clear_chapter_cache is called.

    Args:
        url: Chapter page URL.
        count: Number of consecutive chapters to join (follows next links).
    """
    return await fetch_chapter(url, count)


@mcp.tool()
async def tool_clear_chapter_cache() -> str:
    """Forget all cached chapters."""
    return await clear_chapter_cache()


# ── Translation Tools ────────────────────────────────────────────────────────


@mcp.tool()
async def tool_translate_text(
    text: str,
    prompt_prefix: str = "",
    chunk_strategy: str = "auto",
    chunk_size: int = 1000,
    glossary: str = "",
    chat_surface_url: str = "",
) -> str:
    """Translate text through the chat session, chunk by chunk.

    Chunks that fail after recovery are replaced with an error block and
    the job continues.

    Args:
        text: Source text.
        prompt_prefix: Instruction placed before every chunk (empty=default).
        chunk_strategy: "auto", "chapter", or "word-count".
        chunk_size: Word budget per chunk for word-count splitting.
        glossary: JSON list of {"term","translation"} or "term=translation" lines.
        chat_surface_url: Chat or project URL to translate in (empty=default).
    """
    return await translate_text(
        text, prompt_prefix, chunk_strategy, chunk_size, glossary, chat_surface_url
    )


@mcp.tool()
async def tool_update_project_instructions(project_href: str, new_instructions: str) -> str:
    """Replace a chat project's custom instructions.

    Args:
        project_href: Project path as listed by start_session (e.g. "/g/g-p-abc/project").
        new_instructions: Full replacement text.
    """
    return await update_project_instructions(project_href, new_instructions)


# ── Entry Point ──────────────────────────────────────────────────────────────


def main():
    """Run the MCP server on STDIO transport."""
    logger.info("Starting QuillSync MCP server...")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
