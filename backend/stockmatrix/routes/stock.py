# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

"""
Stock ledger routes with multi-tenant support.

MULTI-TENANT: Variants are resolved within g.tenant_id; a variant of another
tenant is reported as not found.

Business failures return 422 with {"error": <code>, "message": ...} where code
is InsufficientStock or InvalidQuantity. Counters are untouched on failure.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import InsufficientStock, InvalidQuantity, VariantNotFound
from ..services.stock_ledger_service import (
    adjust_stock,
    list_variant_transactions,
    release_stock,
    reserve_stock,
    summarize_variant_transactions,
)
from ..validation import ValidationError, coerce_int

stock_bp = Blueprint("stock", __name__, url_prefix="/api/variants")


def _quantity_from_body(payload: dict) -> int:
    if "quantity" not in payload or payload["quantity"] is None:
        raise ValidationError("quantity is required")
    try:
        return coerce_int(payload["quantity"], "quantity")
    except ValidationError as e:
        raise InvalidQuantity(str(e))


def _optional_text(payload: dict, key: str, max_length: int) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value or None


@stock_bp.post("/<int:variant_id>/stock")
@require_tenant
def adjust_stock_route(variant_id: int):
    """
    Apply a signed stock adjustment.

    Body: {quantity: int (signed), reason?: str, notes?: str}
    Returns: {transaction, stock, reserved_stock, available_stock}
    """
    payload = request.get_json(silent=True) or {}

    try:
        quantity = _quantity_from_body(payload)
        result = adjust_stock(
            tenant_id=g.tenant_id,
            variant_id=variant_id,
            delta=quantity,
            reason=_optional_text(payload, "reason", 64),
            notes=_optional_text(payload, "notes", 255),
            actor=g.actor,
        )
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except VariantNotFound as e:
        return jsonify(e.to_dict()), 404
    except InvalidQuantity as e:
        return jsonify(e.to_dict()), 422
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict())


@stock_bp.post("/<int:variant_id>/reserve")
@require_tenant
def reserve_stock_route(variant_id: int):
    """
    Reserve stock for a pending sale or order.

    Body: {quantity: int > 0, reason?: str, notes?: str}
    Returns: {reserved, available, stock, reserved_stock, transaction}
    """
    payload = request.get_json(silent=True) or {}

    try:
        quantity = _quantity_from_body(payload)
        result = reserve_stock(
            tenant_id=g.tenant_id,
            variant_id=variant_id,
            quantity=quantity,
            reason=_optional_text(payload, "reason", 64),
            notes=_optional_text(payload, "notes", 255),
            actor=g.actor,
        )
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except VariantNotFound as e:
        return jsonify(e.to_dict()), 404
    except (InsufficientStock, InvalidQuantity) as e:
        return jsonify(e.to_dict()), 422
    except Exception:
        current_app.logger.exception("Failed to reserve stock")
        return jsonify({"error": "Internal server error"}), 500

    body = result.to_dict()
    body.update({"reserved": quantity, "available": body["available_stock"]})
    return jsonify(body)


@stock_bp.post("/<int:variant_id>/release")
@require_tenant
def release_stock_route(variant_id: int):
    """
    Release previously reserved stock.

    Body: {quantity: int > 0, reason?: str, notes?: str}
    Returns: {released, available, stock, reserved_stock, transaction}
    """
    payload = request.get_json(silent=True) or {}

    try:
        quantity = _quantity_from_body(payload)
        result = release_stock(
            tenant_id=g.tenant_id,
            variant_id=variant_id,
            quantity=quantity,
            reason=_optional_text(payload, "reason", 64),
            notes=_optional_text(payload, "notes", 255),
            actor=g.actor,
        )
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except VariantNotFound as e:
        return jsonify(e.to_dict()), 404
    except InvalidQuantity as e:
        return jsonify(e.to_dict()), 422
    except Exception:
        current_app.logger.exception("Failed to release stock")
        return jsonify({"error": "Internal server error"}), 500

    body = result.to_dict()
    body.update({"released": quantity, "available": body["available_stock"]})
    return jsonify(body)


@stock_bp.get("/<int:variant_id>/transactions")
@require_tenant
def list_transactions_route(variant_id: int):
    """
    Transaction history, newest first.

    Query params:
    - transaction_type: restock|deduction|reservation|release|correction
    - reason: exact reason code
    - direction: in|out|neutral
    - date_from / date_to: ISO-8601 date or datetime (inclusive; a bare date_to covers the day)
    - page: int (default 1)
    - per_page: int (default 20, clamped to 1..100)
    """
    try:
        result = list_variant_transactions(
            tenant_id=g.tenant_id,
            variant_id=variant_id,
            transaction_type=request.args.get("transaction_type"),
            reason=request.args.get("reason"),
            direction=request.args.get("direction"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except VariantNotFound as e:
        return jsonify(e.to_dict()), 404

    return jsonify(result)


@stock_bp.get("/<int:variant_id>/transactions/summary")
@require_tenant
def transactions_summary_route(variant_id: int):
    try:
        summary = summarize_variant_transactions(
            tenant_id=g.tenant_id,
            variant_id=variant_id,
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
        )
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except VariantNotFound as e:
        return jsonify(e.to_dict()), 404

    return jsonify(summary)
