"""
Source contract implemented by every extension.

An extension package exposes a ``default`` class deriving from
:class:`Extension`. The build pipeline constructs it with no arguments and
only reads its catalog metadata; the browsing operations are for the host
application.
"""

from abc import ABC, abstractmethod
from typing import ClassVar, Dict, Iterable, List, Optional, Protocol, Tuple, runtime_checkable

from extkit.models.chapter import Chapter
from extkit.models.input import Input, merge_preferences
from extkit.models.manga import Manga
from extkit.models.source import MANIFEST_FIELDS, ExtensionMetadata, Languages

# Members every extension must declare
REQUIRED_FIELDS: Tuple[str, ...] = MANIFEST_FIELDS


@runtime_checkable
class MetadataSource(Protocol):
    """Anything able to report the catalog metadata of an extension."""

    def describe(self) -> ExtensionMetadata:
        """
        Get extension metadata.

        Returns:
            ExtensionMetadata with the declared catalog fields

        Raises:
            ValueError: If a required field is missing or invalid
        """
        ...


class Extension(ABC):
    """
    Base class for extensions.

    Subclasses set the catalog members as class attributes and implement
    the browsing operations. ``get_filter_list``, ``get_preferences`` and
    ``headers`` have defaults and are optional to override.

    Example:
        >>> class Example(Extension):
        ...     id = 1
        ...     name = "Example"
        ...     url = "https://example.com"
        ...     version = "1.0.0"
        ...     icon = "https://example.com/icon.png"
        ...     languages = "en"
        ...     nsfw = False
        ...     # browsing operations omitted
    """

    id: ClassVar[int]
    name: ClassVar[str]
    url: ClassVar[str]
    version: ClassVar[str]
    icon: ClassVar[str]
    languages: ClassVar[Languages]
    nsfw: ClassVar[bool]

    def __init__(self) -> None:
        self._preferences: Optional[List[Input]] = None

    def describe(self) -> ExtensionMetadata:
        """Build the catalog entry from the declared members."""
        missing = [field for field in REQUIRED_FIELDS if not hasattr(self, field)]
        if missing:
            raise ValueError(f"{type(self).__name__} is missing {', '.join(missing)}")
        return ExtensionMetadata(**{field: getattr(self, field) for field in REQUIRED_FIELDS})

    def get_filter_list(self) -> List[Input]:
        """Filters accepted by :meth:`search_manga`; none by default."""
        return []

    def get_preferences(self) -> List[Input]:
        """Current preferences, or the declared schema if never set."""
        if self._preferences is None:
            return self.preference_schema()
        return list(self._preferences)

    def preference_schema(self) -> List[Input]:
        """Preferences declared by the extension; none by default."""
        return []

    def set_preferences(self, saved: Iterable[Input]) -> List[Input]:
        """
        Reapply persisted preferences on top of the current schema.

        Args:
            saved: Preferences persisted by the host, possibly from an
                   older version of the extension

        Returns:
            The merged preference list now in effect
        """
        self._preferences = merge_preferences(self.preference_schema(), saved)
        return list(self._preferences)

    def headers(self) -> Dict[str, str]:
        """Extra HTTP headers for requests to the source; none by default."""
        return {}

    @abstractmethod
    async def get_popular_manga(self, page: int) -> List[Manga]:
        ...

    @abstractmethod
    async def get_latest_manga(self, page: int) -> List[Manga]:
        ...

    @abstractmethod
    async def search_manga(
        self,
        page: int,
        query: Optional[str] = None,
        filters: Optional[List[Input]] = None,
    ) -> List[Manga]:
        ...

    @abstractmethod
    async def get_manga_detail(self, path: str) -> Manga:
        ...

    @abstractmethod
    async def get_chapters(self, path: str) -> List[Chapter]:
        ...

    @abstractmethod
    async def get_pages(self, path: str) -> List[str]:
        """Absolute image URLs of a chapter."""
        ...
