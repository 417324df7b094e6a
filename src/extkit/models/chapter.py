"""Chapter records returned by extension browsing operations."""

from typing import Optional

from pydantic import BaseModel, Field


class Chapter(BaseModel):
    """A single chapter of a manga."""

    source_id: int
    title: str
    path: str = Field(..., description="Path of the chapter relative to the source URL")
    number: float
    scanlator: Optional[str] = None
    uploaded: int = Field(..., description="Upload time as a unix timestamp")
