"""
Preference and filter inputs declared by extensions.

Inputs form a closed union discriminated by ``type``. Two inputs describe
the same setting when their ``(type, name)`` identity keys are equal.
"""

from enum import IntEnum
from typing import Annotated, ClassVar, Iterable, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

InputValue = Union[str, float, bool]


class TriState(IntEnum):
    """Selection of a three-way filter."""

    IGNORED = 0
    INCLUDED = 1
    EXCLUDED = 2


class SortSelection(BaseModel):
    """Selected sort criterion and direction."""

    model_config = ConfigDict(frozen=True)

    index: int
    ascending: bool = True


class _BaseInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Attribute holding the user-chosen value
    state_attr: ClassVar[str] = "state"

    name: str


class Text(_BaseInput):
    type: Literal["Text"] = "Text"
    state: Optional[str] = None


class Checkbox(_BaseInput):
    type: Literal["Checkbox"] = "Checkbox"
    state: Optional[bool] = None


class Select(_BaseInput):
    type: Literal["Select"] = "Select"
    values: List[InputValue] = Field(default_factory=list)
    state: Optional[int] = None


class Group(_BaseInput):
    type: Literal["Group"] = "Group"
    state: Optional[List[InputValue]] = None


class Sort(_BaseInput):
    type: Literal["Sort"] = "Sort"
    values: List[InputValue] = Field(default_factory=list)
    state: Optional[SortSelection] = None


class State(_BaseInput):
    state_attr: ClassVar[str] = "selected"

    type: Literal["State"] = "State"
    selected: Optional[TriState] = None


Input = Annotated[
    Union[Text, Checkbox, Select, Group, Sort, State],
    Field(discriminator="type"),
]

# Validates and serializes persisted preference lists
InputList = TypeAdapter(List[Input])


def identity_key(field: Input) -> Tuple[str, str]:
    """Return the ``(type, name)`` pair identifying a setting."""
    return (field.type, field.name)


def merge_preferences(schema: Iterable[Input], saved: Iterable[Input]) -> List[Input]:
    """
    Reapply saved preference values to the current preference schema.

    The schema decides which fields exist, in what order, and their
    structure (such as the choices of a Select); saved data decides their
    state. Saved fields whose identity key is not in the schema are dropped.

    Args:
        schema: Preferences currently declared by the extension
        saved: Previously persisted preferences

    Returns:
        New list following the schema order

    Example:
        >>> schema = [Text(name="a"), Checkbox(name="b"), Text(name="c")]
        >>> merged = merge_preferences(schema, [Checkbox(name="b", state=True)])
        >>> [f.state for f in merged]
        [None, True, None]
    """
    saved_by_key = {}
    for field in saved:
        # First saved occurrence wins
        saved_by_key.setdefault(identity_key(field), field)

    merged: List[Input] = []
    for field in schema:
        previous = saved_by_key.get(identity_key(field))
        if previous is None:
            merged.append(field)
            continue
        attr = field.state_attr
        merged.append(field.model_copy(update={attr: getattr(previous, attr)}))
    return merged
