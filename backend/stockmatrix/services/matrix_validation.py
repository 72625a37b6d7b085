# Overview: Whole-batch validation run on demand before committing a matrix.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from .combination_service import DEFAULT_WARN_THRESHOLD, MatrixCell, combination_advisory

# Column widths of product_variants.sku / .name
SKU_STORED_MAX_LENGTH = 64
NAME_MAX_LENGTH = 255


@dataclass
class ValidationReport:
    errors: dict[str, list[str]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {"valid": self.is_valid, "errors": self.errors, "warnings": self.warnings}


def _field_errors(cell: MatrixCell) -> list[str]:
    errors: list[str] = []

    if not cell.sku or not cell.sku.strip():
        errors.append("SKU is required")
    elif len(cell.sku.strip()) > SKU_STORED_MAX_LENGTH:
        errors.append(f"SKU must be at most {SKU_STORED_MAX_LENGTH} characters")

    if not cell.name or not cell.name.strip():
        errors.append("Name is required")
    elif len(cell.name.strip()) > NAME_MAX_LENGTH:
        errors.append(f"Name must be at most {NAME_MAX_LENGTH} characters")

    if cell.price is None:
        errors.append("Price is required")
    elif not isinstance(cell.price, Decimal) or cell.price < 0:
        errors.append("Price must be non-negative")

    if cell.stock is None:
        errors.append("Stock is required")
    elif isinstance(cell.stock, bool) or not isinstance(cell.stock, int):
        errors.append("Stock must be a whole number")
    elif cell.stock < 0:
        errors.append("Stock must be non-negative")

    return errors


def _sku_key(sku: str | None) -> str:
    return (sku or "").strip().lower()


def validate_cells(cells: Iterable[MatrixCell]) -> dict[str, list[str]]:
    """
    Validate a batch of cells as a whole.

    Returns {cell_id: [messages]} for failing cells only; a cell absent from the
    result has no errors. SKU collisions are reported on every cell sharing the
    SKU (compared trimmed, case-insensitive) so either can be fixed.
    """
    cells = list(cells)
    errors: dict[str, list[str]] = {}

    for cell in cells:
        problems = _field_errors(cell)
        if problems:
            errors[cell.id] = problems

    by_sku: dict[str, list[MatrixCell]] = defaultdict(list)
    for cell in cells:
        key = _sku_key(cell.sku)
        if key:
            by_sku[key].append(cell)

    for key, sharing in by_sku.items():
        if len(sharing) < 2:
            continue
        message = f"Duplicate SKU found: {key.upper()} (used in {len(sharing)} variants)"
        for cell in sharing:
            errors.setdefault(cell.id, []).append(message)

    return errors


def build_report(
    cells: Iterable[MatrixCell],
    *,
    warn_threshold: int = DEFAULT_WARN_THRESHOLD,
) -> ValidationReport:
    cells = list(cells)
    report = ValidationReport(errors=validate_cells(cells))
    advisory = combination_advisory(len(cells), warn_threshold)
    if advisory:
        report.warnings.append(advisory)
    return report
