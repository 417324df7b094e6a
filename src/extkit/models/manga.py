"""Manga/series records returned by extension browsing operations."""

from typing import List, Optional

from pydantic import BaseModel, Field


class Manga(BaseModel):
    """A manga or series listed by a source."""

    source_id: int
    title: str
    author: List[str] = Field(default_factory=list)
    genre: List[str] = Field(default_factory=list)
    status: Optional[str] = None
    description: Optional[str] = None
    path: str = Field(..., description="Path of the manga relative to the source URL")
    cover_url: str = Field(..., description="Absolute URL of the cover image")
