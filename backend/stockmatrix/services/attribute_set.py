# Overview: Attribute dimensions (e.g. Size, Color) consumed by the combination generator.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..errors import InvalidAttributeSet


@dataclass(frozen=True)
class Attribute:
    """A named axis of variation with an ordered set of distinct values."""

    name: str
    values: tuple[str, ...]

    @classmethod
    def of(cls, name: str, values: Iterable[str]) -> "Attribute":
        return cls(name=name, values=tuple(values))

    def __len__(self) -> int:
        return len(self.values)


def normalize_values(values: Iterable[str]) -> tuple[str, ...]:
    """Strip values, drop blanks and repeats; first occurrence wins."""
    seen: set[str] = set()
    out: list[str] = []
    for raw in values:
        value = str(raw).strip()
        if not value or value in seen:
            continue
        seen.add(value)
        out.append(value)
    return tuple(out)


def validate_attributes(attributes: Iterable[Attribute]) -> list[Attribute]:
    """
    Check an attribute list is usable for generation.

    Names are compared case-sensitively. Values must be non-empty and distinct
    within their attribute. Raises InvalidAttributeSet on the first problem.
    """
    attrs = list(attributes)
    if not attrs:
        raise InvalidAttributeSet("At least one attribute is required")

    names: set[str] = set()
    for attr in attrs:
        if not attr.name or not attr.name.strip():
            raise InvalidAttributeSet("Attribute name cannot be empty")
        if attr.name in names:
            raise InvalidAttributeSet(f"Duplicate attribute '{attr.name}'")
        names.add(attr.name)

        if not attr.values:
            raise InvalidAttributeSet(f"Attribute '{attr.name}' must have at least one value")
        if any(not v or not v.strip() for v in attr.values):
            raise InvalidAttributeSet(f"Attribute '{attr.name}' has an empty value")
        if len(set(attr.values)) != len(attr.values):
            raise InvalidAttributeSet(f"Attribute '{attr.name}' has duplicate values")

    return attrs


def attributes_from_payload(raw) -> list[Attribute]:
    """
    Build attributes from a JSON body: [{"name": "Size", "values": ["S", "M"]}, ...].

    Structural problems raise InvalidAttributeSet; content is checked by
    validate_attributes.
    """
    if not isinstance(raw, list):
        raise InvalidAttributeSet("attributes must be a list")

    attrs: list[Attribute] = []
    for item in raw:
        if not isinstance(item, dict):
            raise InvalidAttributeSet("each attribute must be an object with name and values")
        name = item.get("name")
        values = item.get("values")
        if not isinstance(name, str):
            raise InvalidAttributeSet("attribute name must be a string")
        if not isinstance(values, list):
            raise InvalidAttributeSet(f"values for '{name}' must be a list")
        attrs.append(Attribute.of(name.strip(), (str(v).strip() for v in values)))
    return validate_attributes(attrs)


class AttributeSet:
    """
    Ordered, mutable collection of attributes owned by one editing session.

    Mutators never raise for operator mistakes: they return a message describing
    why nothing changed, or None on success.
    """

    def __init__(self, attributes: Iterable[Attribute] = ()):
        self._attributes: list[Attribute] = list(attributes)

    def __iter__(self):
        return iter(self._attributes)

    def __len__(self) -> int:
        return len(self._attributes)

    def __bool__(self) -> bool:
        return bool(self._attributes)

    @property
    def names(self) -> list[str]:
        return [a.name for a in self._attributes]

    def get(self, name: str) -> Attribute | None:
        for attr in self._attributes:
            if attr.name == name:
                return attr
        return None

    def _find_casefold(self, name: str) -> Attribute | None:
        key = name.casefold()
        for attr in self._attributes:
            if attr.name.casefold() == key:
                return attr
        return None

    def add(self, name: str, values: Iterable[str]) -> str | None:
        name = (name or "").strip()
        if not name:
            return "Attribute name cannot be empty."
        if self._find_casefold(name) is not None:
            return f'Attribute "{name}" already exists.'
        cleaned = normalize_values(values)
        if not cleaned:
            return "Attribute must have at least one value."
        self._attributes.append(Attribute(name=name, values=cleaned))
        return None

    def remove(self, name: str) -> str | None:
        attr = self.get(name)
        if attr is None:
            return f'Attribute "{name}" does not exist.'
        self._attributes.remove(attr)
        return None

    def update_values(self, name: str, values: Iterable[str]) -> str | None:
        attr = self.get(name)
        if attr is None:
            return f'Attribute "{name}" does not exist.'
        cleaned = normalize_values(values)
        if not cleaned:
            return "Attribute must have at least one value."
        idx = self._attributes.index(attr)
        self._attributes[idx] = Attribute(name=attr.name, values=cleaned)
        return None

    def clear(self) -> None:
        self._attributes.clear()

    def to_list(self) -> list[Attribute]:
        return list(self._attributes)
