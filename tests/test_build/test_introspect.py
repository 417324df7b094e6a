"""Tests for artifact introspection."""

import asyncio
import sys
from pathlib import Path

import pytest

import extkit
from extkit.build.bundler import DiskOutput, ZipappBundler
from extkit.build.compiler import build_options
from extkit.build.discovery import BuildTarget
from extkit.build.introspect import (
    Introspector,
    StaticMetadataSource,
    SubprocessLoader,
    ZipImportLoader,
    main,
    resolve_artifact,
)
from extkit.exceptions import IntrospectionError

CONSTRUCTOR_RAISES = '''\
from extkit import Extension


class Source(Extension):
    def __init__(self):
        raise RuntimeError("needs a network connection")


default = Source
'''

MISSING_VERSION = '''\
class Source:
    id = 3
    name = "Partial"
    url = "https://partial.example.com"
    icon = "https://partial.example.com/icon.png"
    languages = "all"
    nsfw = False


default = Source
'''


@pytest.fixture
def build_artifact(settings):
    """Compile an extension package to ``dist/<name>.pyz``."""

    def _build(package_dir: Path) -> Path:
        target = BuildTarget(entry=package_dir / "__init__.py", name=package_dir.name)
        artifacts = ZipappBundler().bundle(target, build_options(settings, target), DiskOutput())
        return artifacts[0].path

    return _build


class TestZipImportLoader:
    """Test in-process introspection."""

    def test_describe(self, make_extension, build_artifact):
        artifact = build_artifact(make_extension("alpha", 42, languages=["en", "id"], nsfw=True))

        metadata = asyncio.run(Introspector().describe(artifact))

        assert metadata.id == 42
        assert metadata.name == "Alpha"
        assert metadata.url == "https://alpha.example.com"
        assert metadata.languages == ["en", "id"]
        assert metadata.nsfw is True

    def test_modules_do_not_leak(self, make_extension, build_artifact):
        artifact = build_artifact(make_extension("alpha", 42))

        asyncio.run(Introspector().describe(artifact))

        assert "alpha" not in sys.modules
        assert str(resolve_artifact(artifact)) not in sys.path

    def test_rebuilt_artifact_is_reloaded(self, make_extension, build_artifact):
        """A rebuilt archive at the same path is introspected afresh."""
        artifact = build_artifact(make_extension("alpha", 1, version="1.0.0"))
        first = asyncio.run(Introspector().describe(artifact))

        artifact = build_artifact(make_extension("alpha", 1, version="1.1.0"))
        second = asyncio.run(Introspector().describe(artifact))

        assert first.version == "1.0.0"
        assert second.version == "1.1.0"

    def test_relative_path(self, project, make_extension, build_artifact):
        build_artifact(make_extension("alpha", 5))

        metadata = asyncio.run(Introspector().describe(Path("dist/alpha.pyz")))

        assert metadata.id == 5

    def test_missing_field(self, make_extension, build_artifact):
        artifact = build_artifact(make_extension("partial", 3, source=MISSING_VERSION))

        with pytest.raises(IntrospectionError) as exc_info:
            asyncio.run(Introspector().describe(artifact))

        assert "version" in exc_info.value.reason
        assert exc_info.value.artifact == str(artifact)

    def test_constructor_raises(self, make_extension, build_artifact):
        artifact = build_artifact(make_extension("broken", 4, source=CONSTRUCTOR_RAISES))

        with pytest.raises(IntrospectionError, match="needs a network connection"):
            asyncio.run(Introspector().describe(artifact))

    def test_invalid_field(self, make_extension, build_artifact):
        source = MISSING_VERSION.replace("id = 3", "id = 'three'\n    version = '1.0'")
        artifact = build_artifact(make_extension("partial", 3, source=source))

        with pytest.raises(IntrospectionError, match="invalid metadata: id"):
            asyncio.run(Introspector().describe(artifact))

    def test_missing_export(self, make_extension, build_artifact):
        artifact = build_artifact(make_extension("empty", 9, source="VALUE = 1\n"))

        with pytest.raises(IntrospectionError, match="no 'default' export"):
            asyncio.run(Introspector().describe(artifact))

    def test_not_a_bundle(self, tmp_path):
        path = tmp_path / "junk.pyz"
        path.write_bytes(b"not a zip file")

        with pytest.raises(IntrospectionError):
            asyncio.run(Introspector().describe(path))

    def test_loader_direct(self, make_extension, build_artifact):
        artifact = build_artifact(make_extension("alpha", 6))

        source = ZipImportLoader().load_sync(artifact)

        assert source.describe().id == 6


class TestSubprocessLoader:
    """Test introspection in a child interpreter."""

    def test_describe(self, make_extension, build_artifact, monkeypatch):
        monkeypatch.setenv("PYTHONPATH", str(Path(extkit.__file__).parent.parent))
        artifact = build_artifact(make_extension("alpha", 11))

        metadata = asyncio.run(Introspector(loader=SubprocessLoader()).describe(artifact))

        assert metadata.id == 11
        assert "alpha" not in sys.modules

    def test_child_failure(self, make_extension, build_artifact, monkeypatch):
        monkeypatch.setenv("PYTHONPATH", str(Path(extkit.__file__).parent.parent))
        artifact = build_artifact(make_extension("broken", 4, source=CONSTRUCTOR_RAISES))

        with pytest.raises(IntrospectionError, match="needs a network connection"):
            asyncio.run(Introspector(loader=SubprocessLoader()).describe(artifact))


class TestMain:
    """Test the introspection entry point used by the child interpreter."""

    def test_prints_manifest_entry(self, make_extension, build_artifact, capsys):
        artifact = build_artifact(make_extension("alpha", 12))

        assert main([str(artifact)]) == 0

        out = capsys.readouterr().out
        assert out.startswith('{"id": 12, "name": "Alpha"')

    def test_extension_exiting(self, make_extension, build_artifact, capsys):
        artifact = build_artifact(make_extension("exiter", 2, source="raise SystemExit(3)\n"))

        assert main([str(artifact)]) == 1
        assert "extension exited with status 3" in capsys.readouterr().err

    def test_usage(self, capsys):
        assert main([]) == 2
        assert "usage" in capsys.readouterr().err


def test_static_metadata_source():
    source = StaticMetadataSource(
        {
            "id": 1,
            "name": "Static",
            "url": "https://static.example.com",
            "version": "1.0.0",
            "icon": "https://static.example.com/icon.png",
            "languages": "all",
            "nsfw": False,
        }
    )

    assert source.describe().name == "Static"
