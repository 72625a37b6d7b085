# Overview: Commit gateway from matrix cells to persisted variants, plus variant reads, edits and deletes.

"""
Variant Service

Turns matrix drafts (or any list of variant payloads) into ProductVariant rows,
and edits or retires them afterwards.

COMMIT SEMANTICS:
- Batch size is checked first; an oversized batch is rejected with nothing attempted.
- Each item is validated, checked for SKU collisions (against the tenant's
  persisted variants and earlier items of the same batch) and committed on its own.
- A failing item is reported as {index, sku, message} and never stops the batch.
- Interrupting a batch may leave earlier items committed; there is no batch rollback.
- With unique_skus=True a colliding SKU is suffixed (-01, -02, ...) instead of failing.

STOCK:
- reserved_stock in the input is ignored: new variants start with nothing reserved.
- Initial stock > 0 is recorded as an opening "restock" ledger row in the same
  DB transaction, so the ledger always reconciles to the stock counter.
- Updates never touch stock or reserved_stock; those move only through the ledger.

DELETE:
- Soft delete (deleted_at). The row keeps its ledger history and its SKU stays
  taken within the tenant. Deleted variants disappear from reads and from the ledger.
- A variant with reserved stock cannot be deleted (ConflictError).
"""
from __future__ import annotations

import secrets
from collections import defaultdict
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import BatchTooLarge, DuplicateSku, ValidationFailed, VariantNotFound
from ..extensions import db
from ..models import InventoryTransaction, Product, ProductVariant
from ..models.inventory import STOCK_STATUS_CRITICAL, STOCK_STATUS_LOW, STOCK_STATUS_OUT
from ..time_utils import utcnow
from ..validation import (
    VARIANT_CREATE_POLICY,
    VARIANT_UPDATE_POLICY,
    ConflictError,
    ValidationError,
    enforce_rules_variant,
    validate_payload,
)
from .combination_service import NAME_SEPARATOR
from .concurrency import run_with_retry
from .stock_ledger_service import load_variant_for_update
from .tenant_service import require_product_in_tenant, scoped_query

INITIAL_STOCK_REASON = "initial_stock"

# -01 .. -999 before falling back to a random suffix
MAX_SKU_SUFFIX = 999

VARIANT_MUTABLE_FIELDS = {
    "sku", "name", "attributes", "price_cents", "cost_price_cents", "stock",
    "reorder_point", "low_stock_alert_enabled", "is_active", "sort_order",
}


@dataclass
class BulkCreateResult:
    created: list[ProductVariant] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def failed_indexes(self) -> set[int]:
        return {f["index"] for f in self.failures}

    def to_dict(self) -> dict:
        return {
            "created_count": self.created_count,
            "failed_count": self.failed_count,
            "variants": [v.to_dict() for v in self.created],
            "failures": list(self.failures),
        }


@dataclass
class BulkUpdateResult:
    updated: list[ProductVariant] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "updated_count": len(self.updated),
            "failed_count": len(self.failures),
            "variants": [v.to_dict() for v in self.updated],
            "failures": list(self.failures),
        }


# ----------------------------------------------------------------------
# Reads
# ----------------------------------------------------------------------

def _live(query):
    return query.filter(ProductVariant.deleted_at.is_(None))


def get_variant(*, tenant_id: int, variant_id: int) -> ProductVariant:
    """Raises VariantNotFound for missing, deleted and other-tenant rows alike."""
    variant = db.session.get(ProductVariant, variant_id)
    if variant is None or variant.tenant_id != tenant_id or variant.is_deleted:
        raise VariantNotFound(f"Variant {variant_id} not found")
    return variant


def find_variant_by_sku(*, tenant_id: int, sku: str) -> ProductVariant | None:
    """
    Case-insensitive SKU lookup within a tenant.

    Deleted variants are included: their SKUs stay reserved.
    """
    key = (sku or "").strip().lower()
    if not key:
        return None
    return scoped_query(ProductVariant, tenant_id).filter(func.lower(ProductVariant.sku) == key).first()


def list_variants(*, tenant_id: int, product_id: int, include_inactive: bool = True) -> list[ProductVariant]:
    require_product_in_tenant(product_id, tenant_id)
    query = _live(scoped_query(ProductVariant, tenant_id)).filter(ProductVariant.product_id == product_id)
    if not include_inactive:
        query = query.filter(ProductVariant.is_active.is_(True))
    return query.order_by(ProductVariant.sort_order.asc(), ProductVariant.id.asc()).all()


def ensure_unique_sku(*, tenant_id: int, sku: str, taken: set[str] | None = None) -> str:
    """
    Return sku, or sku with the first free -01 .. -999 suffix.

    taken holds lowercased SKUs already claimed outside the database (e.g.
    earlier items of the same batch). Suffixed SKUs are cut to fit the column.
    """
    taken = taken or set()
    max_length = ProductVariant.__table__.c.sku.type.length
    base = sku.strip()

    def in_use(candidate: str) -> bool:
        return candidate.lower() in taken or find_variant_by_sku(tenant_id=tenant_id, sku=candidate) is not None

    if not in_use(base):
        return base

    for counter in range(1, MAX_SKU_SUFFIX + 1):
        suffix = f"-{counter:02d}"
        candidate = base[: max_length - len(suffix)] + suffix
        if not in_use(candidate):
            return candidate

    while True:
        suffix = f"-{secrets.token_hex(2).upper()}"
        candidate = base[: max_length - len(suffix)] + suffix
        if not in_use(candidate):
            return candidate
# ----------------------------------------------------------------------
# Commit gateway
# ----------------------------------------------------------------------

def _derive_name(patch: dict) -> str:
    values = [pair["value"] for pair in patch.get("attributes") or []]
    return NAME_SEPARATOR.join(values) if values else patch["sku"]


def _create_variant(product: Product, patch: dict, *, index: int, actor: str | None) -> ProductVariant:
    variant = ProductVariant(tenant_id=product.tenant_id, product_id=product.id)
    for k, v in patch.items():
        if k in VARIANT_MUTABLE_FIELDS:
            setattr(variant, k, v)

    if variant.price_cents is None:
        variant.price_cents = product.price_cents or 0
    if not variant.name:
        variant.name = _derive_name(patch)
    if variant.attributes is None:
        variant.attributes = []
    if variant.stock is None:
        variant.stock = 0
    if variant.sort_order is None:
        variant.sort_order = index
    variant.reserved_stock = 0

    db.session.add(variant)
    db.session.flush()  # ensure variant.id exists before the opening ledger row

    if variant.stock > 0:
        db.session.add(
            InventoryTransaction(
                tenant_id=variant.tenant_id,
                variant_id=variant.id,
                transaction_type=InventoryTransaction.TYPE_RESTOCK,
                counter=InventoryTransaction.COUNTER_STOCK,
                quantity_change=variant.stock,
                quantity_before=0,
                quantity_after=variant.stock,
                reason=INITIAL_STOCK_REASON,
                actor=actor,
            )
        )

    db.session.commit()
    return variant


def _check_batch(items, *, max_items: int | None, name: str) -> None:
    if max_items is None:
        max_items = current_app.config.get("VARIANT_BULK_MAX_ITEMS", 500)
    if not isinstance(items, list):
        raise ValidationError(f"{name} must be a list")
    if len(items) > max_items:
        raise BatchTooLarge(size=len(items), limit=max_items)
    if not items:
        raise ValidationError(f"{name} must not be empty")


def _failure(index: int, sku, message: str) -> dict:
    return {"index": index, "sku": sku, "message": message}


def bulk_create_variants(
    *,
    tenant_id: int,
    product_id: int,
    items,
    max_items: int | None = None,
    actor: str | None = None,
    unique_skus: bool = False,
) -> BulkCreateResult:
    """
    Create variants one by one and collect per-item failures.

    unique_skus=True suffixes a taken SKU (see ensure_unique_sku) instead of
    reporting it as a duplicate.

    Raises:
        BatchTooLarge: more than max_items (default VARIANT_BULK_MAX_ITEMS); nothing attempted
        ValidationError: items is not a non-empty list
        TenantAccessError: product unknown or owned by another tenant
    """
    _check_batch(items, max_items=max_items, name="variants")
    product = require_product_in_tenant(product_id, tenant_id)

    result = BulkCreateResult()
    batch_skus: set[str] = set()

    for index, raw in enumerate(items):
        sku_hint = raw.get("sku") if isinstance(raw, dict) else None

        try:
            patch = validate_payload(
                model=ProductVariant, payload=raw, policy=VARIANT_CREATE_POLICY, partial=False
            )
            enforce_rules_variant(patch)
        except ValidationError as e:
            result.failures.append(_failure(index, sku_hint, str(e)))
            continue

        sku = patch["sku"]
        if unique_skus:
            sku = patch["sku"] = ensure_unique_sku(tenant_id=tenant_id, sku=sku, taken=batch_skus)
        key = sku.lower()

        if key in batch_skus:
            result.failures.append(_failure(index, sku, f"duplicate SKU '{sku}' appears earlier in this batch"))
            continue
        batch_skus.add(key)

        if find_variant_by_sku(tenant_id=tenant_id, sku=sku) is not None:
            result.failures.append(_failure(index, sku, DuplicateSku(sku).message))
            continue

        try:
            variant = _create_variant(product, patch, index=index, actor=actor)
        except IntegrityError:
            # Another writer took the SKU between the check and the insert
            db.session.rollback()
            result.failures.append(_failure(index, sku, DuplicateSku(sku).message))
            continue

        result.created.append(variant)

    current_app.logger.info(
        "Bulk variant create product=%s tenant=%s created=%d failed=%d",
        product_id, tenant_id, result.created_count, result.failed_count,
    )
    return result


def commit_matrix(
    session,
    *,
    tenant_id: int,
    product_id: int,
    actor: str | None = None,
    unique_skus: bool = False,
) -> BulkCreateResult:
    """
    Validate a MatrixSession and persist its cells.

    Raises ValidationFailed (carrying the per-cell error mapping) when the matrix
    does not validate; nothing is written in that case. Created cells are
    dropped from the session, failed ones stay for the operator to fix.
    """
    report = session.validate()
    if not report.is_valid:
        raise ValidationFailed(report.errors)

    cells = session.cells
    result = bulk_create_variants(
        tenant_id=tenant_id,
        product_id=product_id,
        items=session.to_variant_inputs(),
        actor=actor,
        unique_skus=unique_skus,
    )

    failed = result.failed_indexes
    session.mark_committed(cell.id for i, cell in enumerate(cells) if i not in failed)
    return result


# ----------------------------------------------------------------------
# Edits and deletes
# ----------------------------------------------------------------------

def update_variant(*, tenant_id: int, variant_id: int, payload) -> ProductVariant:
    """
    Partially update a variant's descriptive fields.

    Raises:
        VariantNotFound: missing, deleted or owned by another tenant
        ValidationError: bad or non-writable field (stock, reserved_stock included)
        DuplicateSku: the new SKU is taken within the tenant
    """
    get_variant(tenant_id=tenant_id, variant_id=variant_id)

    patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_UPDATE_POLICY, partial=True)
    enforce_rules_variant(patch)

    new_sku = patch.get("sku")
    if new_sku is not None:
        clash = find_variant_by_sku(tenant_id=tenant_id, sku=new_sku)
        if clash is not None and clash.id != variant_id:
            raise DuplicateSku(new_sku)

    def _op():
        variant = get_variant(tenant_id=tenant_id, variant_id=variant_id)
        for k, v in patch.items():
            if k in VARIANT_MUTABLE_FIELDS:
                setattr(variant, k, v)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            if new_sku is None:
                raise
            raise DuplicateSku(new_sku)
        return variant

    # version_id also moves with every ledger write; retry on a lost race
    return run_with_retry(_op)


def _variant_id_of(raw) -> int | None:
    value = raw.get("id") if isinstance(raw, dict) else raw
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def bulk_update_variants(
    *,
    tenant_id: int,
    product_id: int,
    items,
    max_items: int | None = None,
) -> BulkUpdateResult:
    """
    Update several variants of one product; each item is {id, ...fields}.

    Items are applied one by one. A failing item is reported as
    {index, id, message} and never stops the batch.
    """
    _check_batch(items, max_items=max_items, name="variants")
    require_product_in_tenant(product_id, tenant_id)

    result = BulkUpdateResult()
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            result.failures.append({"index": index, "id": None, "message": "item must be an object"})
            continue
        variant_id = _variant_id_of(raw)
        if variant_id is None:
            result.failures.append({"index": index, "id": None, "message": "id must be an integer"})
            continue

        try:
            variant = get_variant(tenant_id=tenant_id, variant_id=variant_id)
            if variant.product_id != product_id:
                raise VariantNotFound(f"Variant {variant_id} not found")
            variant = update_variant(tenant_id=tenant_id, variant_id=variant_id, payload=raw)
        except (ValidationError, DuplicateSku, VariantNotFound) as e:
            result.failures.append({"index": index, "id": variant_id, "message": str(e)})
            continue

        result.updated.append(variant)

    current_app.logger.info(
        "Bulk variant update product=%s tenant=%s updated=%d failed=%d",
        product_id, tenant_id, len(result.updated), len(result.failures),
    )
    return result


def delete_variant(*, tenant_id: int, variant_id: int) -> ProductVariant:
    """
    Soft-delete a variant.

    Raises VariantNotFound, or ConflictError while any stock is reserved.
    """
    def _op():
        variant = load_variant_for_update(tenant_id, variant_id)
        if variant.reserved_stock > 0:
            raise ConflictError(
                f"Variant {variant_id} has {variant.reserved_stock} reserved unit(s); release them before deleting"
            )
        variant.deleted_at = utcnow()
        db.session.commit()
        return variant

    try:
        variant = run_with_retry(_op)
    except (VariantNotFound, ConflictError):
        db.session.rollback()
        raise

    current_app.logger.info("Deleted variant id=%s sku=%s tenant=%s", variant.id, variant.sku, tenant_id)
    return variant


def bulk_delete_variants(
    *,
    tenant_id: int,
    product_id: int,
    variant_ids,
    max_items: int | None = None,
) -> dict:
    """
    Soft-delete several variants of one product.

    Ids that are unknown, deleted, of another product or tenant, or that hold
    reservations are reported in failures; the rest are deleted.
    """
    _check_batch(variant_ids, max_items=max_items, name="variant_ids")
    require_product_in_tenant(product_id, tenant_id)

    deleted: list[int] = []
    failures: list[dict] = []
    for raw in variant_ids:
        variant_id = _variant_id_of(raw)
        if variant_id is None:
            failures.append({"id": raw, "message": "id must be an integer"})
            continue
        try:
            variant = get_variant(tenant_id=tenant_id, variant_id=variant_id)
            if variant.product_id != product_id:
                raise VariantNotFound(f"Variant {variant_id} not found")
            delete_variant(tenant_id=tenant_id, variant_id=variant_id)
        except (VariantNotFound, ConflictError) as e:
            failures.append({"id": variant_id, "message": str(e)})
            continue
        deleted.append(variant_id)

    return {"deleted_count": len(deleted), "deleted_ids": deleted, "failures": failures}


# ----------------------------------------------------------------------
# Stock aggregation
# ----------------------------------------------------------------------

def _variant_stock_row(v: ProductVariant) -> dict:
    return {
        "id": v.id,
        "sku": v.sku,
        "name": v.name,
        "stock": v.stock,
        "reserved_stock": v.reserved_stock,
        "available_stock": v.available_stock,
        "reorder_point": v.reorder_point,
        "stock_status": v.stock_status,
    }


def get_product_stock_summary(*, tenant_id: int, product_id: int) -> dict:
    """
    Aggregate stock across a product's active variants.

    stock_by_attribute groups by attribute name then value, e.g.
    {"Size": {"S": {"stock": 10, "reserved_stock": 2, "available_stock": 8, "variant_count": 2}}}.
    Low-stock variants only include those with alerts enabled.
    """
    variants = list_variants(tenant_id=tenant_id, product_id=product_id, include_inactive=False)

    by_attribute: dict[str, dict[str, dict]] = defaultdict(dict)
    low_stock: list[dict] = []
    out_of_stock: list[dict] = []

    for v in variants:
        status = v.stock_status
        if status == STOCK_STATUS_OUT:
            out_of_stock.append(_variant_stock_row(v))
        elif status in (STOCK_STATUS_LOW, STOCK_STATUS_CRITICAL) and v.low_stock_alert_enabled:
            low_stock.append(_variant_stock_row(v))

        for pair in v.attributes or []:
            bucket = by_attribute[pair["name"]].setdefault(
                pair["value"],
                {"stock": 0, "reserved_stock": 0, "available_stock": 0, "variant_count": 0},
            )
            bucket["stock"] += v.stock
            bucket["reserved_stock"] += v.reserved_stock
            bucket["available_stock"] += v.available_stock
            bucket["variant_count"] += 1

    return {
        "product_id": product_id,
        "variant_count": len(variants),
        "total_stock": sum(v.stock for v in variants),
        "total_reserved": sum(v.reserved_stock for v in variants),
        "total_available": sum(v.available_stock for v in variants),
        "low_stock_count": len(low_stock),
        "out_of_stock_count": len(out_of_stock),
        "low_stock_variants": low_stock,
        "out_of_stock_variants": out_of_stock,
        "stock_by_attribute": {name: dict(values) for name, values in by_attribute.items()},
    }
