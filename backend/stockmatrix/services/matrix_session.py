# Overview: Per-operator matrix editing session with attribute management and undo/redo.

"""
Matrix editing session.

One MatrixSession holds the attribute set, the generated cells and the edit
history for a single operator. Nothing is module-global: two sessions (two
browser tabs, two requests) never share state.

HISTORY MODEL:
- Every cell edit records per-cell (before, after) snapshots as one EditRecord.
- A new edit pushes onto the undo stack and clears the redo stack.
- undo() applies the "before" side and moves the record to the redo stack;
  redo() is the mirror.
- Cells are immutable, so snapshots are the cell objects themselves.
- Validation errors are not history: undo/redo keep the live cell's errors.

LIFECYCLE:
- Attribute changes mark the matrix stale; generate_matrix() discards the
  current cells and history and regenerates from scratch.
- is_dirty turns on with the first cell edit after generation/reset and is
  cleared by reset_matrix() or mark_committed() once nothing is left to commit.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable

from .attribute_set import AttributeSet
from .combination_service import (
    DEFAULT_WARN_THRESHOLD,
    SKU_PATTERN_ATTRIBUTES,
    MatrixCell,
    PriceModifiers,
    combination_advisory,
    combination_count,
    generate_matrix,
    to_decimal,
)
from .matrix_validation import ValidationReport, build_report

EDITABLE_FIELDS = frozenset({"sku", "name", "price", "stock"})


class UnknownCellError(LookupError):
    """Raised when an edit names a cell id that is not in the matrix (caller bug)."""


@dataclass(frozen=True)
class CellChange:
    index: int
    before: MatrixCell
    after: MatrixCell | None  # None: the cell was removed


@dataclass(frozen=True)
class EditRecord:
    label: str
    changes: tuple[CellChange, ...]

    @property
    def is_removal(self) -> bool:
        return all(c.after is None for c in self.changes)


def _coerce_edit(fields: dict) -> dict:
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

    clean: dict = {}
    for key, value in fields.items():
        if key in ("sku", "name"):
            if not isinstance(value, str):
                raise ValueError(f"{key} must be a string")
            clean[key] = value
        elif key == "price":
            clean[key] = to_decimal(value, field_name="price")
        elif key == "stock":
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError("stock must be an integer")
            clean[key] = value
    return clean


class MatrixSession:
    def __init__(
        self,
        base_sku: str = "",
        base_price=Decimal("0"),
        price_modifiers: PriceModifiers | None = None,
        *,
        base_stock: int = 0,
        sanitize: bool = False,
        sku_pattern: str = SKU_PATTERN_ATTRIBUTES,
        warn_threshold: int = DEFAULT_WARN_THRESHOLD,
        max_history: int | None = None,
    ):
        self.base_sku = base_sku
        self.base_price = to_decimal(base_price, field_name="base_price")
        self.price_modifiers = dict(price_modifiers or {})
        self.base_stock = base_stock
        self.sanitize = sanitize
        self.sku_pattern = sku_pattern
        self.warn_threshold = warn_threshold
        self.max_history = max_history

        self.attributes = AttributeSet()
        self._cells: list[MatrixCell] = []
        self._undo: list[EditRecord] = []
        self._redo: list[EditRecord] = []

        self.is_dirty = False
        self.is_stale = False
        self.advisory: str | None = None

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def cells(self) -> list[MatrixCell]:
        return list(self._cells)

    @property
    def combination_count(self) -> int:
        return combination_count(self.attributes)

    @property
    def combination_warning(self) -> str | None:
        return combination_advisory(self.combination_count, self.warn_threshold)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def get_cell(self, cell_id: str) -> MatrixCell:
        return self._cells[self._index_of(cell_id)]

    def _index_of(self, cell_id: str) -> int:
        for idx, cell in enumerate(self._cells):
            if cell.id == cell_id:
                return idx
        raise UnknownCellError(cell_id)

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def _attributes_changed(self, message: str | None) -> str | None:
        if message is None:
            self.is_stale = True
        return message

    def add_attribute(self, name: str, values: Iterable[str]) -> str | None:
        return self._attributes_changed(self.attributes.add(name, values))

    def remove_attribute(self, name: str) -> str | None:
        return self._attributes_changed(self.attributes.remove(name))

    def update_attribute_values(self, name: str, values: Iterable[str]) -> str | None:
        return self._attributes_changed(self.attributes.update_values(name, values))

    def configure(self, *, base_sku=None, base_price=None, price_modifiers=None, sku_pattern=None) -> None:
        """Change derivation inputs; takes effect on the next generate_matrix()."""
        if base_sku is not None:
            self.base_sku = base_sku
        if sku_pattern is not None:
            self.sku_pattern = sku_pattern
        if base_price is not None:
            self.base_price = to_decimal(base_price, field_name="base_price")
        if price_modifiers is not None:
            self.price_modifiers = dict(price_modifiers)
        self.is_stale = True

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_matrix(self) -> list[MatrixCell]:
        """Regenerate from the current attributes, discarding cells and history."""
        cells = generate_matrix(
            self.attributes.to_list(),
            self.base_sku,
            self.base_price,
            self.price_modifiers,
            base_stock=self.base_stock,
            sanitize=self.sanitize,
            sku_pattern=self.sku_pattern,
        )
        self._cells = cells
        self._undo.clear()
        self._redo.clear()
        self.is_dirty = False
        self.is_stale = False
        self.advisory = combination_advisory(len(cells), self.warn_threshold)
        return list(cells)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def _push(self, record: EditRecord) -> None:
        self._undo.append(record)
        if self.max_history is not None and len(self._undo) > self.max_history:
            del self._undo[0 : len(self._undo) - self.max_history]
        self._redo.clear()
        self.is_dirty = True

    def _resolve_ids(self, cell_ids: Iterable[str]) -> list[int]:
        indexes: list[int] = []
        seen: set[str] = set()
        for cell_id in cell_ids:
            if cell_id in seen:
                continue
            seen.add(cell_id)
            indexes.append(self._index_of(cell_id))
        return indexes

    def update_cell(self, cell_id: str, **fields) -> MatrixCell:
        self.bulk_update_cells([cell_id], **fields)
        return self.get_cell(cell_id)

    def bulk_update_cells(self, cell_ids: Iterable[str], **fields) -> int:
        """
        Apply the same field values to several cells as one undoable step.

        Returns the number of cells that actually changed.
        """
        clean = _coerce_edit(fields)
        indexes = self._resolve_ids(cell_ids)

        changes: list[CellChange] = []
        for idx in indexes:
            before = self._cells[idx]
            after = replace(before, **clean)
            if after == before:
                continue
            changes.append(CellChange(index=idx, before=before, after=after))

        if not changes:
            return 0

        for change in changes:
            self._cells[change.index] = change.after
        label = "update" if len(changes) == 1 else "bulk update"
        self._push(EditRecord(label=label, changes=tuple(changes)))
        return len(changes)

    def remove_cell(self, cell_id: str) -> None:
        self.remove_cells([cell_id])

    def remove_cells(self, cell_ids: Iterable[str]) -> int:
        indexes = sorted(self._resolve_ids(cell_ids))
        if not indexes:
            return 0
        changes = tuple(CellChange(index=i, before=self._cells[i], after=None) for i in indexes)
        for idx in reversed(indexes):
            del self._cells[idx]
        self._push(EditRecord(label="remove", changes=changes))
        return len(changes)

    # ------------------------------------------------------------------
    # Undo / redo
    # ------------------------------------------------------------------

    def _restore(self, idx: int, target: MatrixCell) -> None:
        live = self._cells[idx]
        self._cells[idx] = target.with_errors(live.validation_errors)

    def undo(self) -> bool:
        if not self._undo:
            return False
        record = self._undo.pop()
        if record.is_removal:
            for change in sorted(record.changes, key=lambda c: c.index):
                self._cells.insert(change.index, change.before)
        else:
            for change in record.changes:
                self._restore(change.index, change.before)
        self._redo.append(record)
        self.is_dirty = True
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        record = self._redo.pop()
        if record.is_removal:
            for change in sorted(record.changes, key=lambda c: c.index, reverse=True):
                del self._cells[change.index]
        else:
            for change in record.changes:
                self._restore(change.index, change.after)
        self._undo.append(record)
        self.is_dirty = True
        return True

    # ------------------------------------------------------------------
    # Validation / commit hand-off
    # ------------------------------------------------------------------

    def validate(self) -> ValidationReport:
        """Run the batch pipeline and refresh every cell's validation_errors."""
        report = build_report(self._cells, warn_threshold=self.warn_threshold)
        self._cells = [cell.with_errors(report.errors.get(cell.id, ())) for cell in self._cells]
        return report

    def to_variant_inputs(self) -> list[dict]:
        return [
            {
                "sku": cell.sku,
                "name": cell.name,
                "attributes": cell.attributes,
                "price": str(cell.price) if cell.price is not None else None,
                "stock": cell.stock,
            }
            for cell in self._cells
        ]

    def mark_committed(self, cell_ids: Iterable[str]) -> None:
        """Drop committed cells; failed ones stay for the operator to fix."""
        committed = set(cell_ids)
        self._cells = [cell for cell in self._cells if cell.id not in committed]
        self._undo.clear()
        self._redo.clear()
        self.is_dirty = bool(self._cells)

    def reset_matrix(self) -> None:
        self.attributes.clear()
        self._cells = []
        self._undo.clear()
        self._redo.clear()
        self.is_dirty = False
        self.is_stale = False
        self.advisory = None
