"""Tests for preference inputs and preference merging."""

import pytest
from pydantic import ValidationError

from extkit.models.input import (
    Checkbox,
    Group,
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


class TestIdentityKey:
    """Test the (type, name) identity of inputs."""

    def test_same_type_and_name(self):
        """Inputs with equal type and name are the same setting."""
        assert identity_key(Text(name="query")) == identity_key(Text(name="query", state="x"))

    def test_different_type_same_name(self):
        """Equal names of different variants are different settings."""
        assert identity_key(Text(name="adult")) != identity_key(Checkbox(name="adult"))

    def test_different_name(self):
        assert identity_key(Checkbox(name="a")) != identity_key(Checkbox(name="b"))


class TestMergePreferences:
    """Test reapplying saved preferences to a schema."""

    def test_order_preserved_and_state_applied(self):
        """[A, B, C] merged with {B: stateX} gives [A, B(stateX), C]."""
        schema = [Text(name="A"), Checkbox(name="B"), Select(name="C", values=["x", "y"])]
        saved = [Checkbox(name="B", state=True)]

        merged = merge_preferences(schema, saved)

        assert [identity_key(f) for f in merged] == [
            ("Text", "A"),
            ("Checkbox", "B"),
            ("Select", "C"),
        ]
        assert merged[0] == schema[0]
        assert merged[1].state is True
        assert merged[2] == schema[2]

    def test_unknown_saved_fields_dropped(self):
        """Saved fields absent from the schema do not survive the merge."""
        schema = [Text(name="A"), Text(name="B")]
        saved = [Text(name="B", state="kept"), Text(name="D", state="dropped")]

        merged = merge_preferences(schema, saved)

        assert len(merged) == 2
        assert [f.name for f in merged] == ["A", "B"]
        assert merged[1].state == "kept"

    def test_type_change_is_not_a_match(self):
        """A saved field whose variant changed is ignored."""
        schema = [Checkbox(name="adult")]
        saved = [Text(name="adult", state="yes")]

        merged = merge_preferences(schema, saved)

        assert merged == schema

    def test_schema_structure_wins(self):
        """The schema's choices are kept, only the selection comes from saved data."""
        schema = [Select(name="lang", values=["en", "id", "fr"])]
        saved = [Select(name="lang", values=["en", "id"], state=1)]

        merged = merge_preferences(schema, saved)

        assert merged[0].values == ["en", "id", "fr"]
        assert merged[0].state == 1

    def test_sort_and_state_variants(self):
        """Sort selections and tri-state selections are carried over."""
        schema = [
            Sort(name="order", values=["title", "updated"]),
            State(name="genre"),
            Group(name="tags"),
        ]
        saved = [
            Sort(name="order", values=["title"], state=SortSelection(index=1, ascending=False)),
            State(name="genre", selected=TriState.EXCLUDED),
            Group(name="tags", state=["action"]),
        ]

        merged = merge_preferences(schema, saved)

        assert merged[0].state == SortSelection(index=1, ascending=False)
        assert merged[0].values == ["title", "updated"]
        assert merged[1].selected == TriState.EXCLUDED
        assert merged[2].state == ["action"]

    def test_inputs_not_mutated(self):
        """Merging returns new objects and leaves its inputs alone."""
        schema = [Text(name="A")]
        saved = [Text(name="A", state="new")]

        merged = merge_preferences(schema, saved)

        assert schema[0].state is None
        assert merged[0] is not schema[0]

    def test_empty_saved(self):
        schema = [Text(name="A"), Checkbox(name="B")]
        assert merge_preferences(schema, []) == schema


class TestInputList:
    """Test (de)serialization of persisted preference lists."""

    def test_roundtrip_through_json(self):
        """Persisted lists come back as the right variants."""
        fields = [
            Text(name="q", state="one piece"),
            Checkbox(name="nsfw", state=False),
            Sort(name="order", values=["a", "b"], state=SortSelection(index=0, ascending=True)),
        ]

        data = InputList.dump_json(fields)
        restored = InputList.validate_json(data)

        assert restored == fields
        assert isinstance(restored[2], Sort)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            InputList.validate_python([{"type": "Slider", "name": "x"}])
