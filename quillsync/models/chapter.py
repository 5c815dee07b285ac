"""Pydantic models for fetched novel chapters."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChapterFetchResult(BaseModel):
    """A chapter scraped from a source site. Wire names follow the client."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(default="", serialization_alias="chapterName")
    raw_text: str = Field(serialization_alias="rawText")
    prev_link: str = Field(default="", serialization_alias="prevLink")
    next_link: str = Field(default="", serialization_alias="nextLink")


class FetchChapterRequest(BaseModel):
    url: str
    count: int = Field(default=1, ge=1)

    @field_validator("url")
    @classmethod
    def _require_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("No URL provided.")
        return value
