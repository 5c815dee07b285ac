"""MCP tools for translating text and fetching chapters through the service."""

from __future__ import annotations

import json
import logging
import sys
from typing import AsyncIterator

import httpx

from ..config import SERVICE_URL
from .session_tools import _call_session_manager

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, dict]]:
    """Group raw SSE lines into ``(event, data)`` pairs.

    Frames without an ``event:`` line are reported as ``"message"``.
    """
    event = "message"
    data_lines: list[str] = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data_lines:
                try:
                    yield event, json.loads("\n".join(data_lines))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping malformed event data: {data_lines[0][:100]}")
            event, data_lines = "message", []
        elif line.startswith("event:"):
            event = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].strip())
    if data_lines:
        try:
            yield event, json.loads("\n".join(data_lines))
        except json.JSONDecodeError:
            logger.warning(f"Skipping malformed trailing event data: {data_lines[0][:100]}")


def _parse_glossary(glossary: str) -> list[dict]:
    """Accept a JSON list of entries or ``term=translation`` lines."""
    glossary = glossary.strip()
    if not glossary:
        return []
    if glossary.startswith("["):
        return json.loads(glossary)
    entries = []
    for line in glossary.splitlines():
        term, sep, translation = line.partition("=")
        if sep and term.strip() and translation.strip():
            entries.append({"term": term.strip(), "translation": translation.strip()})
    return entries


async def translate_text(
    text: str,
    prompt_prefix: str = "",
    chunk_strategy: str = "auto",
    chunk_size: int = 1000,
    glossary: str = "",
    chat_surface_url: str = "",
) -> str:
    """Translate a document chunk by chunk and return the joined translation."""
    try:
        entries = _parse_glossary(glossary)
    except json.JSONDecodeError as e:
        return f"Error: glossary is not valid JSON ({e})."

    body = {
        "text": text,
        "promptPrefix": prompt_prefix,
        "chunkStrategy": chunk_strategy,
        "chunkSize": chunk_size,
        "glossary": entries,
        "chatSurfaceUrl": chat_surface_url,
    }

    translation = None
    partial = ""
    chunk_errors: list[str] = []
    url = f"{SERVICE_URL}/chunk-and-translate"
    try:
        # Jobs run for as long as the chat keeps answering
        async with httpx.AsyncClient(timeout=httpx.Timeout(None, connect=10.0)) as client:
            async with client.stream("POST", url, json=body) as resp:
                if resp.status_code >= 400:
                    data = json.loads(await resp.aread())
                    return f"Error: {data.get('error', f'HTTP {resp.status_code}')}"

                async for event, data in iter_sse_events(resp.aiter_lines()):
                    if event == "start":
                        logger.info(f"Translation started: {data.get('requestId')}")
                    elif event == "message":
                        partial = data.get("partial", partial)
                        logger.info(
                            f"Chunk {data.get('chunk')}/{data.get('total')} done "
                            f"({data.get('progress', 0):.0f}%)"
                        )
                    elif event == "error":
                        chunk_errors.append(data.get("error", "Unknown error"))
                    elif event == "end":
                        translation = data.get("translation", "")

    except httpx.ConnectError:
        return (
            f"Error: Translation service is not reachable at {SERVICE_URL}. "
            "It should auto-start with the MCP server."
        )
    except httpx.HTTPError as e:
        return f"Error: translation stream broke ({e}).\n\nPartial translation:\n{partial}"

    if translation is None:
        reason = chunk_errors[-1] if chunk_errors else "the stream ended early"
        return f"Error: translation stopped: {reason}\n\nPartial translation:\n{partial}"

    if chunk_errors:
        notes = "\n".join(f"- {e}" for e in chunk_errors)
        return f"{translation}\n\nSome chunks could not be translated:\n{notes}"
    return translation


async def fetch_chapter(url: str, count: int = 1) -> str:
    """Fetch one chapter, or ``count`` consecutive chapters joined together."""
    result = await _call_session_manager("POST", "/fetch-chapter", {"url": url, "count": count})

    if "error" in result:
        return f"Error: {result['error']}"
    if not result.get("success"):
        return f"Error: {result.get('message', 'Fetch failed.')}"

    return json.dumps(
        {
            "chapterName": result.get("chapterName", ""),
            "prevLink": result.get("prevLink", ""),
            "nextLink": result.get("nextLink", ""),
            "rawText": result.get("rawText", ""),
        },
        indent=2,
        ensure_ascii=False,
    )


async def clear_chapter_cache() -> str:
    result = await _call_session_manager("POST", "/clear-cache")

    if "error" in result:
        return f"Error: {result['error']}"
    return result.get("message", "Chapter cache cleared.")


async def update_project_instructions(project_href: str, new_instructions: str) -> str:
    """Replace the custom instructions of a chat project."""
    result = await _call_session_manager(
        "POST",
        "/update-instructions",
        {"projectHref": project_href, "newInstructions": new_instructions},
        timeout=300.0,
    )

    if "error" in result:
        return f"Error: {result['error']}"
    return result.get("message", "Instructions updated.")
