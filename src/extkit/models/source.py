"""
Catalog metadata declared by every extension.

These are the only members of an extension instance the pipeline reads.
"""

from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Key order of a manifest entry
MANIFEST_FIELDS = ("id", "name", "url", "version", "icon", "languages", "nsfw")

Languages = Union[Literal["all"], str, List[str]]


class ExtensionMetadata(BaseModel):
    """
    Manifest entry describing one compiled extension.

    Instances are frozen: they are built once per artifact during
    introspection and never modified afterwards.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = Field(..., strict=True, description="Numeric identity, unique per catalog")
    name: str = Field(..., min_length=1, description="Display name of the source")
    url: str = Field(..., description="Base URL of the source")
    version: str = Field(..., min_length=1, description="Semantic version of the extension")
    icon: str = Field(..., description="Absolute URL of the source icon")
    languages: Languages = Field(
        ...,
        description="'all', a single locale code, or an ordered list of locale codes",
    )
    nsfw: bool = Field(..., strict=True, description="Whether the source serves adult content")

    @field_validator("languages")
    @classmethod
    def validate_languages(cls, value: Languages) -> Languages:
        """Reject empty locale codes."""
        codes = value if isinstance(value, list) else [value]
        if any(not code for code in codes):
            raise ValueError("languages must not contain empty locale codes")
        return value

    def to_manifest_dict(self) -> Dict[str, Any]:
        """Serialize to a manifest entry with exactly the catalog keys."""
        data = self.model_dump()
        return {key: data[key] for key in MANIFEST_FIELDS}
