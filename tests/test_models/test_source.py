"""Tests for extension catalog metadata."""

import json

import pytest
from pydantic import ValidationError

from extkit.models.source import MANIFEST_FIELDS, ExtensionMetadata

EXAMPLE = {
    "id": 1,
    "name": "Example",
    "url": "https://example.com",
    "version": "1.0.0",
    "icon": "https://example.com/icon.png",
    "languages": "en",
    "nsfw": False,
}


class TestExtensionMetadata:
    """Test ExtensionMetadata validation and serialization."""

    def test_manifest_dict_has_exact_keys(self):
        metadata = ExtensionMetadata(**EXAMPLE)

        data = metadata.to_manifest_dict()

        assert tuple(data) == MANIFEST_FIELDS
        assert data == EXAMPLE

    def test_json_roundtrip_keeps_fields(self):
        """Parsing and re-serializing a manifest entry loses nothing."""
        metadata = ExtensionMetadata(**json.loads(json.dumps(EXAMPLE)))

        assert json.loads(json.dumps(metadata.to_manifest_dict())) == EXAMPLE

    @pytest.mark.parametrize("languages", ["all", "en", ["en", "id"]])
    def test_languages_variants(self, languages):
        metadata = ExtensionMetadata(**{**EXAMPLE, "languages": languages})

        assert metadata.languages == languages

    def test_empty_locale_rejected(self):
        with pytest.raises(ValidationError):
            ExtensionMetadata(**{**EXAMPLE, "languages": ["en", ""]})

    def test_missing_field_rejected(self):
        data = dict(EXAMPLE)
        del data["version"]

        with pytest.raises(ValidationError, match="version"):
            ExtensionMetadata(**data)

    def test_id_must_be_integer(self):
        """String ids are not silently coerced."""
        with pytest.raises(ValidationError):
            ExtensionMetadata(**{**EXAMPLE, "id": "1"})

    def test_frozen(self):
        metadata = ExtensionMetadata(**EXAMPLE)

        with pytest.raises(ValidationError):
            metadata.name = "Changed"
