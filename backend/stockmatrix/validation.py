from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import DeclarativeMeta

from .models.money import decimal_to_cents
from .services.combination_service import to_decimal


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict."""


# A virtual field maps one payload key onto a model column: (key, raw) -> (column_key, value)
VirtualField = Callable[[str, Any], "tuple[str, Any]"]


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - virtual_fields: payload keys that are not columns (e.g. "price" -> price_cents)
    - ignored_fields: accepted but silently dropped (server-owned values)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    virtual_fields: dict[str, VirtualField] | None = None
    ignored_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion: rejects bools, floats, decimals and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    return result


def coerce_money(value: Any, field: str) -> int:
    """Decimal-like input ("12.50", 12.5, 12) -> non-negative cents."""
    try:
        amount = to_decimal(value, field_name=field)
    except ValueError as e:
        raise ValidationError(str(e))
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    cents = decimal_to_cents(amount)
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {Decimal(MAX_PRICE_CENTS) / 100:,.2f}")
    return cents


def money_field(column_key: str) -> VirtualField:
    def _coerce(key: str, raw: Any):
        if raw is None:
            return column_key, None
        return column_key, coerce_money(raw, key)
    return _coerce


def attribute_pairs(key: str, raw: Any):
    """[{"name": ..., "value": ...}] in declaration order; names unique."""
    if raw is None:
        return key, []
    if not isinstance(raw, list):
        raise ValidationError(f"{key} must be a list of {{name, value}} objects")
    pairs: list[dict] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, dict) or "name" not in item or "value" not in item:
            raise ValidationError(f"{key} must be a list of {{name, value}} objects")
        name = str(item["name"]).strip()
        value = str(item["value"]).strip()
        if not name or not value:
            raise ValidationError(f"{key} entries need a non-empty name and value")
        if name in seen:
            raise ValidationError(f"{key} has duplicate attribute '{name}'")
        seen.add(name)
        pairs.append({"name": name, "value": value})
    return key, pairs


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Strings
    if isinstance(coltype, String):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields) plus virtual and ignored fields
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by column.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    virtual = policy.virtual_fields or {}
    ignored = policy.ignored_fields or set()

    if not partial:
        missing = [f for f in sorted(required) if payload.get(f) is None]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k in ignored:
            continue
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols and k not in virtual:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in ignored:
            continue

        if k in virtual:
            column_key, val = virtual[k](k, raw)
            if val is None and not cols[column_key].nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[column_key] = val
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, String) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


VARIANT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "attributes", "price", "cost_price", "stock",
        "reorder_point", "low_stock_alert_enabled", "is_active", "sort_order",
    },
    required_on_create={"sku"},
    virtual_fields={
        "price": money_field("price_cents"),
        "cost_price": money_field("cost_price_cents"),
        "attributes": attribute_pairs,
    },
    # Reservations only ever come from the ledger; new variants start at 0
    ignored_fields={"reserved_stock", "id", "available_stock"},
)

# stock / reserved_stock move only through the ledger, so they are not writable here
VARIANT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "attributes", "price", "cost_price",
        "reorder_point", "low_stock_alert_enabled", "is_active", "sort_order",
    },
    virtual_fields={
        "price": money_field("price_cents"),
        "cost_price": money_field("cost_price_cents"),
        "attributes": attribute_pairs,
    },
    ignored_fields={"id", "available_stock"},
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "price", "cost_price", "is_active"},
    required_on_create={"sku", "name"},
    virtual_fields={
        "price": money_field("price_cents"),
        "cost_price": money_field("cost_price_cents"),
    },
)


def enforce_rules_variant(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if patch.get("stock") is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0")
    if patch.get("reorder_point") is not None and patch["reorder_point"] < 0:
        raise ValidationError("reorder_point must be >= 0")
    if patch.get("sort_order") is not None and patch["sort_order"] < 0:
        raise ValidationError("sort_order must be >= 0")
