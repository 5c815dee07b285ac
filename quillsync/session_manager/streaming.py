"""Server-sent event framing over an aiohttp ``StreamResponse``."""

from __future__ import annotations

import json
import logging
import sys

from aiohttp import web

from ..models.events import StreamEvent

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def format_sse(event: StreamEvent) -> bytes:
    """Encode one frame; unnamed events are plain ``data:`` frames."""
    lines = []
    if event.event:
        lines.append(f"event: {event.event}")
    lines.append(f"data: {json.dumps(event.payload(), ensure_ascii=False)}")
    return ("\n".join(lines) + "\n\n").encode("utf-8")


class EventStream:
    """One long-lived event stream to a single client."""

    def __init__(self, request: web.Request):
        self._request = request
        self.response = web.StreamResponse(status=200, headers=SSE_HEADERS)
        self.client_gone = False

    async def open(self):
        """Send the headers now so the client sees the stream is alive."""
        await self.response.prepare(self._request)

    async def send(self, event: StreamEvent) -> bool:
        """Write ``event``; returns False once the client has disconnected."""
        if self.client_gone:
            return False
        try:
            await self.response.write(format_sse(event))
            return True
        except ConnectionResetError:
            logger.warning("Client disconnected from the event stream.")
            self.client_gone = True
            return False

    async def close(self):
        if self.client_gone:
            return
        try:
            await self.response.write_eof()
        except ConnectionResetError:
            self.client_gone = True
