"""Pydantic models for session and login state."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class SessionStatus(BaseModel):
    """Current state of the browser session."""

    is_active: bool = False
    state: str = "not_running"  # not_running, running, disconnected
    cookie_count: int = 0
    cached_chapters: int = 0
    message: str = ""
    error: Optional[str] = None


class ChatProject(BaseModel):
    """A project listed in the chat surface sidebar."""

    name: str
    href: str
    instructions: str = ""


class LoginResult(BaseModel):
    """Outcome of the manual login flow."""

    success: bool
    message: str
    projects: list[ChatProject] = []
