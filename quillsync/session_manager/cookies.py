"""Persisted cookie set for the chat surface."""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
import time
from pathlib import Path
from typing import Any, Mapping, Optional

from ..config import COOKIES_PATH

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

_SAME_SITE_VALUES = {"Strict", "Lax", "None"}


def is_expired(cookie: Mapping[str, Any], now: Optional[float] = None) -> bool:
    """Session cookies (no expiry, or -1) never count as expired."""
    expires = cookie.get("expires")
    if expires is None:
        return False
    try:
        expires = float(expires)
    except (TypeError, ValueError):
        return True
    if expires <= 0:
        return False
    return expires <= (now if now is not None else time.time())


def to_cookie_param(cookie: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    """Convert a stored record into a Playwright ``add_cookies`` entry."""
    name = cookie.get("name")
    value = cookie.get("value")
    domain = cookie.get("domain")
    if not name or value is None or not domain:
        return None

    param: dict[str, Any] = {
        "name": str(name),
        "value": str(value),
        "domain": domain,
        "path": cookie.get("path") or "/",
    }
    expires = cookie.get("expires")
    if isinstance(expires, (int, float)) and expires > 0:
        param["expires"] = expires
    for key in ("httpOnly", "secure"):
        if key in cookie:
            param[key] = bool(cookie[key])
    same_site = cookie.get("sameSite")
    if same_site in _SAME_SITE_VALUES:
        param["sameSite"] = same_site
    return param


class CookieStore:
    """A single JSON file, always overwritten as a whole."""

    def __init__(self, path: Path = COOKIES_PATH):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def _read(self) -> list[dict]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Cookie file unreadable, ignoring it: {e}")
            return []
        if not isinstance(data, list):
            logger.warning("Cookie file does not hold a list, ignoring it.")
            return []
        return [c for c in data if isinstance(c, dict)]

    def load(self) -> list[dict]:
        """Return unexpired cookies ready for ``BrowserContext.add_cookies``."""
        stored = self._read()
        params = [to_cookie_param(c) for c in stored if not is_expired(c)]
        params = [p for p in params if p is not None]
        if stored and not params:
            logger.info("Cookie file exists but no valid cookies found.")
        return params

    def save(self, cookies: list[dict]) -> None:
        """Replace the cookie file atomically.

        A crash mid-write leaves the previous file intact; a partial set is
        never visible to readers.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(cookies, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info(f"Saved {len(cookies)} cookies to {self.path}")
