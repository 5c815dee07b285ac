"""Events emitted by a translation job, in the order a caller receives them."""

from __future__ import annotations

from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field


class StreamEvent(BaseModel):
    """Base for server-sent events. ``event`` is None for unnamed data frames."""

    model_config = ConfigDict(populate_by_name=True)

    event: ClassVar[Optional[str]] = None

    def payload(self) -> dict:
        return self.model_dump(by_alias=True)


class StartEvent(StreamEvent):
    event: ClassVar[Optional[str]] = "start"

    message: str = "Translation started"
    request_id: str = Field(serialization_alias="requestId")


class ProgressEvent(StreamEvent):
    partial: str
    chunk: int
    total: int
    progress: float


class ChunkErrorEvent(StreamEvent):
    """A chunk failed after recovery; the job continues."""

    event: ClassVar[Optional[str]] = "error"

    error: str
    request_id: str = Field(serialization_alias="requestId")


class FatalErrorEvent(ChunkErrorEvent):
    """The job stopped. Always the last frame of its stream."""


class EndEvent(StreamEvent):
    event: ClassVar[Optional[str]] = "end"

    translation: str
    request_id: str = Field(serialization_alias="requestId")
