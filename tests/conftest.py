"""
Pytest configuration and fixtures for extkit tests.

Provides a throwaway extensions repository (``src/``, ``tests/``, ``dist/``)
and a factory writing extension packages into it.
"""

import logging
import textwrap
from pathlib import Path
from typing import Callable, Optional

import pytest

from extkit.config import Settings

EXTENSION_TEMPLATE = '''\
from extkit import Extension
{imports}

class {class_name}(Extension):
    id = {id!r}
    name = {name!r}
    url = "https://{slug}.example.com"
    version = {version!r}
    icon = "https://{slug}.example.com/icon.png"
    languages = {languages!r}
    nsfw = {nsfw!r}

    async def get_popular_manga(self, page):
        return []

    async def get_latest_manga(self, page):
        return []

    async def search_manga(self, page, query=None, filters=None):
        return []

    async def get_manga_detail(self, path):
        raise NotImplementedError

    async def get_chapters(self, path):
        return []

    async def get_pages(self, path):
        return []


default = {class_name}
'''


def render_extension(
    name: str,
    ext_id: int,
    version: str = "1.0.0",
    languages="en",
    nsfw: bool = False,
    imports: str = "",
    class_name: str = "Source",
) -> str:
    """Source code of a minimal extension package."""
    return EXTENSION_TEMPLATE.format(
        imports=imports,
        class_name=class_name,
        id=ext_id,
        name=name.capitalize(),
        slug=name,
        version=version,
        languages=languages,
        nsfw=nsfw,
    )


@pytest.fixture
def project(tmp_path, monkeypatch) -> Path:
    """Empty extensions repository, used as the working directory."""
    root = tmp_path / "extensions"
    (root / "src").mkdir(parents=True)
    (root / "tests").mkdir()
    monkeypatch.chdir(root)
    return root


@pytest.fixture
def settings(project, tmp_path) -> Settings:
    """Settings pointing at the temporary repository."""
    return Settings(
        source_dir=str(project / "src"),
        output_dir=str(project / "dist"),
        tests_dir=str(project / "tests"),
        cache_dir=str(tmp_path / "cache"),
        log_console_enabled=False,
        log_file_enabled=False,
    )


@pytest.fixture
def make_extension(project) -> Callable[..., Path]:
    """
    Factory writing ``src/<name>/__init__.py``.

    Extra modules can be passed as ``files={"helpers.py": "..."}``.
    """

    def _make(
        name: str,
        ext_id: int,
        source: Optional[str] = None,
        files: Optional[dict] = None,
        **kwargs,
    ) -> Path:
        package_dir = project / "src" / name
        package_dir.mkdir(parents=True, exist_ok=True)
        if source is None:
            source = render_extension(name, ext_id, **kwargs)
        (package_dir / "__init__.py").write_text(source)
        for filename, content in (files or {}).items():
            path = package_dir / filename
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(content))
        return package_dir

    return _make


@pytest.fixture(autouse=True)
def reset_extkit_logger():
    """Undo handlers installed by setup_logging so caplog keeps working."""
    yield
    logger = logging.getLogger("extkit")
    for handler in list(logger.handlers):
        if getattr(handler, "_extkit_handler", False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
