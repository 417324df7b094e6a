"""
Data models shared by extensions and the build pipeline.
"""

from extkit.models.chapter import Chapter
from extkit.models.input import (
    Checkbox,
    Group,
    Input,
    InputList,
    Select,
    Sort,
    SortSelection,
    State,
    Text,
    TriState,
    identity_key,
    merge_preferences,
)
from extkit.models.manga import Manga
from extkit.models.source import MANIFEST_FIELDS, ExtensionMetadata

__all__ = [
    "Chapter",
    "Checkbox",
    "ExtensionMetadata",
    "Group",
    "Input",
    "InputList",
    "MANIFEST_FIELDS",
    "Manga",
    "Select",
    "Sort",
    "SortSelection",
    "State",
    "Text",
    "TriState",
    "identity_key",
    "merge_preferences",
]
