# Overview: Combination generator; expands attributes into draft variant cells.

"""
Combination Generator

Given ordered attributes, enumerate every value combination and derive a draft
variant (matrix cell) for each one.

INVARIANTS:
- Output count is exactly the product of per-attribute value counts.
- Order is deterministic: attribute declaration order, value order within each
  attribute, first attribute varies slowest.
- Cell ids are the combination key ("Color=Red|Size=S"), stable across
  regenerations of the same attribute set. Backslash, "|" and "=" inside a
  name or value are backslash-escaped so distinct combinations never share a key.
- Pure: no I/O, no database, no hidden state.

SKU patterns (base "TS", second cell of the matrix):
- attributes:  each value in declaration order joined with "-"   TS-S-Blue
- sequential:  running number, zero-padded to three digits        TS-VAR-002
- incremental: letter per cell, cycle number once past Z          TS-B, ..., TS-A1
PRICE: base price + sum of per-value modifiers (missing entries add 0),
rounded half-up to cents and floored at zero.
NAME: values joined with " - " for display.
"""
from __future__ import annotations

import itertools
import re
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Iterator, Mapping

from ..errors import InvalidAttributeSet
from .attribute_set import Attribute, validate_attributes

SKU_DELIMITER = "-"
NAME_SEPARATOR = " - "
KEY_SEPARATOR = "|"
SKU_MAX_LENGTH = 50
DEFAULT_WARN_THRESHOLD = 500

SKU_PATTERN_ATTRIBUTES = "attributes"
SKU_PATTERN_SEQUENTIAL = "sequential"
SKU_PATTERN_INCREMENTAL = "incremental"
SKU_PATTERNS = (SKU_PATTERN_ATTRIBUTES, SKU_PATTERN_SEQUENTIAL, SKU_PATTERN_INCREMENTAL)

CENT = Decimal("0.01")
_SKU_INVALID_CHARS = re.compile(r"[^A-Z0-9_\-]")
_KEY_SPECIAL_CHARS = re.compile(r"([\\|=])")

Combination = tuple[tuple[str, str], ...]
PriceModifiers = Mapping[str, Mapping[str, object]]


def to_decimal(value, *, field_name: str = "value") -> Decimal:
    """Coerce a money-like input to Decimal; bools and non-finite numbers are rejected."""
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a number")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, float, str)):
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"{field_name} must be a number")
    else:
        raise ValueError(f"{field_name} must be a number")
    if not dec.is_finite():
        raise ValueError(f"{field_name} must be a finite number")
    return dec


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class MatrixCell:
    """
    One editable draft variant.

    Immutable: edits produce a new cell via dataclasses.replace, so an old
    instance doubles as an undo snapshot.
    """
    id: str
    combination: Combination
    sku: str
    name: str
    price: Decimal | None
    stock: int | None = 0
    validation_errors: tuple[str, ...] = field(default=(), compare=False)

    @property
    def attributes(self) -> list[dict]:
        return [{"name": n, "value": v} for n, v in self.combination]

    def with_errors(self, errors: Iterable[str]) -> "MatrixCell":
        return replace(self, validation_errors=tuple(errors))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "price": str(self.price) if self.price is not None else None,
            "stock": self.stock,
            "attributes": self.attributes,
            "validation_errors": list(self.validation_errors),
        }


def combination_count(attributes: Iterable[Attribute]) -> int:
    attrs = list(attributes)
    if not attrs:
        return 0
    total = 1
    for attr in attrs:
        total *= len(attr.values)
    return total


def iter_combinations(attributes: Iterable[Attribute]) -> Iterator[Combination]:
    """Yield combinations lazily; itertools.product keeps this iterative for deep inputs."""
    attrs = list(attributes)
    names = [a.name for a in attrs]
    for values in itertools.product(*(a.values for a in attrs)):
        yield tuple(zip(names, values))


def _escape_key_part(text: str) -> str:
    return _KEY_SPECIAL_CHARS.sub(r"\\\1", text)


def combination_key(combination: Combination) -> str:
    return KEY_SEPARATOR.join(
        f"{_escape_key_part(name)}={_escape_key_part(value)}" for name, value in combination
    )


def sanitize_sku(sku: str) -> str:
    """Uppercase, strip characters outside [A-Z0-9_-], cap at 50 characters."""
    return _SKU_INVALID_CHARS.sub("", sku.upper())[:SKU_MAX_LENGTH]


def _sku_suffix(pattern: str, combination: Combination, index: int) -> list[str]:
    if pattern == SKU_PATTERN_ATTRIBUTES:
        return [value for _, value in combination]
    if pattern == SKU_PATTERN_SEQUENTIAL:
        return ["VAR", f"{index + 1:03d}"]
    if pattern == SKU_PATTERN_INCREMENTAL:
        cycle, offset = divmod(index, 26)
        return [chr(ord("A") + offset) + (str(cycle) if cycle else "")]
    raise ValueError(f"sku_pattern must be one of: {', '.join(SKU_PATTERNS)}")


def derive_sku(
    base_sku: str,
    combination: Combination,
    *,
    pattern: str = SKU_PATTERN_ATTRIBUTES,
    index: int = 0,
    sanitize: bool = False,
) -> str:
    """
    SKU for the cell at position ``index`` of the matrix.

    Only the attributes pattern looks at the combination; the sequential and
    incremental patterns number cells by position.
    """
    parts = [base_sku.strip()] if base_sku and base_sku.strip() else []
    parts.extend(_sku_suffix(pattern, combination, index))
    sku = SKU_DELIMITER.join(parts)
    return sanitize_sku(sku) if sanitize else sku


def derive_name(combination: Combination) -> str:
    return NAME_SEPARATOR.join(value for _, value in combination)


def calculate_price(
    base_price,
    combination: Combination,
    price_modifiers: PriceModifiers | None = None,
) -> Decimal:
    price = to_decimal(base_price, field_name="base_price")
    modifiers = price_modifiers or {}
    for name, value in combination:
        delta = modifiers.get(name, {}).get(value)
        if delta is not None:
            price += to_decimal(delta, field_name=f"modifier {name}={value}")
    return max(Decimal("0.00"), quantize_money(price))


def combination_advisory(count: int, threshold: int = DEFAULT_WARN_THRESHOLD) -> str | None:
    """
    Operator warning for large matrices. Generation never fails on size;
    the caller decides whether to proceed.
    """
    if count > threshold * 2:
        return (
            f"{count} variants will be created. This is too many. "
            "Consider reducing attributes or values."
        )
    if count > threshold:
        return f"{count} variants will be created. This is a large number. Proceed with caution."
    return None


def generate_matrix(
    attributes: Iterable[Attribute],
    base_sku: str,
    base_price,
    price_modifiers: PriceModifiers | None = None,
    *,
    base_stock: int = 0,
    sanitize: bool = False,
    sku_pattern: str = SKU_PATTERN_ATTRIBUTES,
) -> list[MatrixCell]:
    """
    Expand attributes into matrix cells.

    Raises InvalidAttributeSet for an empty attribute list, an attribute with no
    values, duplicate names or duplicate values, and for an unknown sku_pattern
    or a malformed base price / modifier.
    """
    attrs = validate_attributes(attributes)
    if sku_pattern not in SKU_PATTERNS:
        raise InvalidAttributeSet(f"sku_pattern must be one of: {', '.join(SKU_PATTERNS)}")
    try:
        to_decimal(base_price, field_name="base_price")
    except ValueError as e:
        raise InvalidAttributeSet(str(e))

    cells: list[MatrixCell] = []
    for index, combination in enumerate(iter_combinations(attrs)):
        try:
            price = calculate_price(base_price, combination, price_modifiers)
        except ValueError as e:
            raise InvalidAttributeSet(str(e))
        cells.append(
            MatrixCell(
                id=combination_key(combination),
                combination=combination,
                sku=derive_sku(base_sku, combination, pattern=sku_pattern, index=index, sanitize=sanitize),
                name=derive_name(combination),
                price=price,
                stock=base_stock,
            )
        )
    return cells
