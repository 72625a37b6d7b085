# Overview: Stock ledger; atomic adjust/reserve/release with an append-only transaction log.

"""
Stock Ledger Invariants (authoritative)

Counters (per variant, stored on ProductVariant):
- stock >= 0
- 0 <= reserved_stock <= stock
- available_stock = stock - reserved_stock, derived on read

Operations:
- adjust(delta):   stock += delta. Fails with InvalidQuantity if stock would go
                   negative or below what is already reserved. Zero delta is
                   recorded as a "correction" row and moves nothing.
- reserve(qty):    reserved += qty. qty must be a positive int; InsufficientStock
                   when qty > available (never clamped).
- release(qty):    reserved -= qty. qty must be a positive int; InvalidQuantity
                   when qty > reserved.

Every successful mutation appends exactly one InventoryTransaction in the same
DB transaction as the counter change. A failed operation changes nothing and
appends nothing.

Concurrency:
- The variant row is read with SELECT ... FOR UPDATE (ignored by SQLite).
- ProductVariant.version_id is an optimistic lock; a lost race raises
  StaleDataError at flush, the session is rolled back and the whole
  read-check-write-append unit is retried (LEDGER_RETRY_ATTEMPTS).
- Different variants never contend.
"""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func

from ..errors import InsufficientStock, InvalidQuantity, VariantCoreError, VariantNotFound
from ..extensions import db
from ..models import InventoryTransaction, ProductVariant
from ..time_utils import parse_range_end, parse_range_start, utcnow
from ..validation import ValidationError
from .concurrency import lock_for_update, run_with_retry

CORRECTION_REASONS = frozenset({"correction", "count_adjustment", "manual"})

DIRECTIONS = ("in", "out", "neutral")

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


@dataclass(frozen=True)
class LedgerResult:
    variant: ProductVariant
    transaction: InventoryTransaction

    def to_dict(self) -> dict:
        return {
            "transaction": self.transaction.to_dict(),
            **get_stock_levels(self.variant),
        }


def get_stock_levels(variant: ProductVariant) -> dict:
    return {
        "stock": variant.stock,
        "reserved_stock": variant.reserved_stock,
        "available_stock": variant.available_stock,
    }


def _require_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantity(f"{field} must be an integer")
    return value


def _require_positive(quantity, field: str = "quantity") -> int:
    quantity = _require_int(quantity, field)
    if quantity <= 0:
        raise InvalidQuantity(f"{field} must be a positive integer")
    return quantity


def load_variant_for_update(tenant_id: int, variant_id: int) -> ProductVariant:
    query = db.session.query(ProductVariant).filter_by(id=variant_id)
    variant = lock_for_update(query).first()
    if variant is None or variant.tenant_id != tenant_id or variant.is_deleted:
        raise VariantNotFound(f"Variant {variant_id} not found")
    return variant


def classify_adjustment(delta: int, reason: str | None) -> str:
    if delta == 0 or (reason or "").lower() in CORRECTION_REASONS:
        return InventoryTransaction.TYPE_CORRECTION
    if delta > 0:
        return InventoryTransaction.TYPE_RESTOCK
    return InventoryTransaction.TYPE_DEDUCTION


def _append(
    variant: ProductVariant,
    *,
    transaction_type: str,
    counter: str,
    change: int,
    before: int,
    after: int,
    reason: str | None,
    notes: str | None,
    actor: str | None,
) -> InventoryTransaction:
    tx = InventoryTransaction(
        tenant_id=variant.tenant_id,
        variant_id=variant.id,
        transaction_type=transaction_type,
        counter=counter,
        quantity_change=change,
        quantity_before=before,
        quantity_after=after,
        reason=reason,
        notes=notes,
        actor=actor,
        occurred_at=utcnow(),
    )
    db.session.add(tx)
    return tx


def _run_ledger_op(op) -> LedgerResult:
    """Retry concurrency conflicts; business errors roll back and surface unchanged."""
    def _guarded():
        try:
            return op()
        except VariantCoreError:
            db.session.rollback()
            raise

    return run_with_retry(_guarded)


def adjust_stock(
    *,
    tenant_id: int,
    variant_id: int,
    delta: int,
    reason: str | None = None,
    notes: str | None = None,
    actor: str | None = None,
) -> LedgerResult:
    """Apply a signed stock change and append a restock/deduction/correction row."""
    delta = _require_int(delta, "quantity")

    def _op():
        variant = load_variant_for_update(tenant_id, variant_id)
        before = variant.stock
        after = before + delta

        if after < 0:
            raise InvalidQuantity(f"Adjustment would make stock negative ({before} {delta:+d})")
        if after < variant.reserved_stock:
            raise InvalidQuantity(
                f"Adjustment would leave stock ({after}) below reserved stock ({variant.reserved_stock})"
            )

        if delta != 0:
            variant.stock = after
        tx = _append(
            variant,
            transaction_type=classify_adjustment(delta, reason),
            counter=InventoryTransaction.COUNTER_STOCK,
            change=delta,
            before=before,
            after=after,
            reason=reason,
            notes=notes,
            actor=actor,
        )
        db.session.commit()
        current_app.logger.info(
            "Stock adjusted variant=%s %d -> %d (%s)", variant.id, before, after, tx.transaction_type
        )
        return LedgerResult(variant=variant, transaction=tx)

    return _run_ledger_op(_op)


def reserve_stock(
    *,
    tenant_id: int,
    variant_id: int,
    quantity: int,
    reason: str | None = None,
    notes: str | None = None,
    actor: str | None = None,
) -> LedgerResult:
    """Move quantity from available into reserved."""
    quantity = _require_positive(quantity)

    def _op():
        variant = load_variant_for_update(tenant_id, variant_id)
        available = variant.available_stock
        if quantity > available:
            raise InsufficientStock(requested=quantity, available=available)

        before = variant.reserved_stock
        variant.reserved_stock = before + quantity
        tx = _append(
            variant,
            transaction_type=InventoryTransaction.TYPE_RESERVATION,
            counter=InventoryTransaction.COUNTER_RESERVED,
            change=quantity,
            before=before,
            after=variant.reserved_stock,
            reason=reason,
            notes=notes,
            actor=actor,
        )
        db.session.commit()
        current_app.logger.info("Reserved %d of variant=%s (reserved now %d)", quantity, variant.id, variant.reserved_stock)
        return LedgerResult(variant=variant, transaction=tx)

    return _run_ledger_op(_op)


def release_stock(
    *,
    tenant_id: int,
    variant_id: int,
    quantity: int,
    reason: str | None = None,
    notes: str | None = None,
    actor: str | None = None,
) -> LedgerResult:
    """Return previously reserved quantity to available."""
    quantity = _require_positive(quantity)

    def _op():
        variant = load_variant_for_update(tenant_id, variant_id)
        before = variant.reserved_stock
        if quantity > before:
            raise InvalidQuantity(f"Cannot release {quantity}; only {before} reserved")

        variant.reserved_stock = before - quantity
        tx = _append(
            variant,
            transaction_type=InventoryTransaction.TYPE_RELEASE,
            counter=InventoryTransaction.COUNTER_RESERVED,
            change=-quantity,
            before=before,
            after=variant.reserved_stock,
            reason=reason,
            notes=notes,
            actor=actor,
        )
        db.session.commit()
        current_app.logger.info("Released %d of variant=%s (reserved now %d)", quantity, variant.id, variant.reserved_stock)
        return LedgerResult(variant=variant, transaction=tx)

    return _run_ledger_op(_op)


# ----------------------------------------------------------------------
# Reads
# ----------------------------------------------------------------------

def _variant_in_tenant(tenant_id: int, variant_id: int) -> ProductVariant:
    variant = db.session.get(ProductVariant, variant_id)
    if variant is None or variant.tenant_id != tenant_id or variant.is_deleted:
        raise VariantNotFound(f"Variant {variant_id} not found")
    return variant


def _filtered_transactions(
    tenant_id: int,
    variant_id: int,
    *,
    transaction_type: str | None = None,
    reason: str | None = None,
    direction: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
):
    q = db.session.query(InventoryTransaction).filter(
        InventoryTransaction.tenant_id == tenant_id,
        InventoryTransaction.variant_id == variant_id,
    )

    if transaction_type:
        if transaction_type not in InventoryTransaction.TYPES:
            raise ValidationError(f"transaction_type must be one of: {', '.join(InventoryTransaction.TYPES)}")
        q = q.filter(InventoryTransaction.transaction_type == transaction_type)

    if reason:
        q = q.filter(InventoryTransaction.reason == reason)

    if direction:
        if direction not in DIRECTIONS:
            raise ValidationError(f"direction must be one of: {', '.join(DIRECTIONS)}")
        if direction == "in":
            q = q.filter(InventoryTransaction.quantity_change > 0)
        elif direction == "out":
            q = q.filter(InventoryTransaction.quantity_change < 0)
        else:
            q = q.filter(InventoryTransaction.quantity_change == 0)

    try:
        start = parse_range_start(date_from)
        end = parse_range_end(date_to)
    except ValueError:
        raise ValidationError("date_from/date_to must be ISO-8601 dates or datetimes")
    if start is not None:
        q = q.filter(InventoryTransaction.occurred_at >= start)
    if end is not None:
        q = q.filter(InventoryTransaction.occurred_at <= end)

    return q


def list_variant_transactions(
    *,
    tenant_id: int,
    variant_id: int,
    transaction_type: str | None = None,
    reason: str | None = None,
    direction: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    page: int = 1,
    per_page: int | None = None,
) -> dict:
    """
    Newest-first transaction history with filters and pagination.

    Date bounds are inclusive; a date-only date_to covers that whole day.
    per_page defaults to 20 and is clamped to 1..100.
    """
    _variant_in_tenant(tenant_id, variant_id)

    q = _filtered_transactions(
        tenant_id,
        variant_id,
        transaction_type=transaction_type,
        reason=reason,
        direction=direction,
        date_from=date_from,
        date_to=date_to,
    ).order_by(InventoryTransaction.occurred_at.desc(), InventoryTransaction.id.desc())

    per_page = max(1, min(per_page or DEFAULT_PER_PAGE, MAX_PER_PAGE))  # Default 20, 1..100
    page = max(page or 1, 1)

    total = q.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = q.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [tx.to_dict() for tx in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def summarize_variant_transactions(
    *,
    tenant_id: int,
    variant_id: int,
    date_from: str | None = None,
    date_to: str | None = None,
) -> dict:
    """Totals in/out of the stock counter and row counts per transaction type."""
    variant = _variant_in_tenant(tenant_id, variant_id)
    base = _filtered_transactions(tenant_id, variant_id, date_from=date_from, date_to=date_to)

    counts = dict(
        base.with_entities(InventoryTransaction.transaction_type, func.count(InventoryTransaction.id))
        .group_by(InventoryTransaction.transaction_type)
        .all()
    )

    stock_rows = base.filter(InventoryTransaction.counter == InventoryTransaction.COUNTER_STOCK)
    total_in = (
        stock_rows.filter(InventoryTransaction.quantity_change > 0)
        .with_entities(func.coalesce(func.sum(InventoryTransaction.quantity_change), 0))
        .scalar()
    )
    total_out = (
        stock_rows.filter(InventoryTransaction.quantity_change < 0)
        .with_entities(func.coalesce(func.sum(InventoryTransaction.quantity_change), 0))
        .scalar()
    )

    return {
        "variant_id": variant.id,
        "total_in": int(total_in or 0),
        "total_out": abs(int(total_out or 0)),
        "net_change": int(total_in or 0) + int(total_out or 0),
        "transaction_count": sum(counts.values()),
        "by_type": {t: counts.get(t, 0) for t in InventoryTransaction.TYPES},
        **get_stock_levels(variant),
    }
