"""Pydantic models for translation jobs and their requests."""

from __future__ import annotations

import secrets
import time
from enum import Enum
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..config import CHAT_SURFACE_URL, DEFAULT_CHUNK_SIZE, DEFAULT_PROMPT_PREFIX


def new_request_id(prefix: str = "request") -> str:
    """Build an id like ``request-1718000000000-k3j9x0a2b``."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    CHUNK_FAILED = "chunk_failed"
    COMPLETED = "completed"
    ABORTED = "aborted"


class GlossaryEntry(BaseModel):
    """A source term and the translation it must be replaced with."""

    term: str = Field(validation_alias=AliasChoices("term", "chineseTerm"))
    translation: str


class ChunkResult(BaseModel):
    """Outcome of one chunk. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    text: str
    succeeded: bool
    attempts: int = 1


class TranslationJob(BaseModel):
    """One document translation, mutated only by the orchestrator."""

    id: str = Field(default_factory=new_request_id)
    chunks: list[str] = Field(default_factory=list)
    current_index: int = 0
    accumulated_output: str = ""
    status: JobStatus = JobStatus.PENDING
    results: list[ChunkResult] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.ABORTED)

    def record(self, result: ChunkResult):
        """Append a chunk's text, separating chunks by a blank line."""
        if self.results:
            self.accumulated_output += "\n\n"
        self.accumulated_output += result.text
        self.results.append(result)


class TranslateRequest(BaseModel):
    """Body of a chunked translation request."""

    model_config = ConfigDict(populate_by_name=True)

    text: str
    chat_surface_url: str = Field(
        default=CHAT_SURFACE_URL,
        validation_alias=AliasChoices("chatSurfaceUrl", "chatGPTUrl", "chat_surface_url"),
    )
    prompt_prefix: str = Field(
        default=DEFAULT_PROMPT_PREFIX,
        validation_alias=AliasChoices("promptPrefix", "prompt_prefix"),
    )
    glossary: list[GlossaryEntry] = Field(default_factory=list)
    chunk_strategy: Literal["auto", "chapter", "word-count"] = Field(
        default="auto",
        validation_alias=AliasChoices("chunkStrategy", "chunk_strategy"),
    )
    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        gt=0,
        validation_alias=AliasChoices("chunkSize", "chunk_size"),
    )

    @field_validator("text")
    @classmethod
    def _require_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("No text provided for translation.")
        return value

    @field_validator("chat_surface_url", mode="before")
    @classmethod
    def _default_url(cls, value):
        return value if isinstance(value, str) and value.strip() else CHAT_SURFACE_URL

    @field_validator("prompt_prefix", mode="before")
    @classmethod
    def _default_prefix(cls, value):
        return value if isinstance(value, str) and value.strip() else DEFAULT_PROMPT_PREFIX
