# Overview: Flask API routes for variant matrices and variant commits; parses input and returns JSON responses.

"""
Variant routes with multi-tenant support.

MULTI-TENANT: All operations are scoped to g.tenant_id (set by @require_tenant).

- POST   /api/products/<id>/variants/bulk   commit a batch of variant payloads
- PATCH  /api/products/<id>/variants/bulk   partial-success bulk edit
- DELETE /api/products/<id>/variants/bulk   soft delete by variant_ids
- GET    /api/products/<id>/variants        list a product's variants
- GET    /api/products/<id>/stock-summary   aggregate stock across variants
- POST   /api/variants/matrix/preview       expand attributes into draft cells (nothing saved)
- POST   /api/variants/matrix/validate      run the batch validation over draft cells
- GET    /api/variants/<id>                 one variant
- PATCH  /api/variants/<id>                 edit descriptive fields (never stock)
- DELETE /api/variants/<id>                 soft delete
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import BatchTooLarge, DuplicateSku, InvalidAttributeSet, VariantNotFound
from ..services.attribute_set import attributes_from_payload
from ..services.combination_service import (
    SKU_PATTERN_ATTRIBUTES,
    MatrixCell,
    combination_advisory,
    combination_count,
    generate_matrix,
    to_decimal,
)
from ..services.matrix_validation import build_report
from ..services.tenant_service import TenantAccessError
from ..services.variant_service import (
    bulk_create_variants,
    bulk_delete_variants,
    bulk_update_variants,
    delete_variant,
    get_product_stock_summary,
    get_variant,
    list_variants,
    update_variant,
)
from ..validation import ConflictError, ValidationError

variants_bp = Blueprint("variants", __name__, url_prefix="/api")


def _warn_threshold() -> int:
    return current_app.config.get("VARIANT_COMBINATION_WARN_THRESHOLD", 500)


@variants_bp.post("/products/<int:product_id>/variants/bulk")
@require_tenant
def bulk_create_route(product_id: int):
    """
    Create variants in bulk.

    Body: {"variants": [{sku, name?, attributes?, price?, stock?, ...}, ...], "unique_skus"?: bool}

    unique_skus suffixes taken SKUs (-01, -02, ...) instead of failing those items.

    Returns:
    - 201: at least one variant created (failures listed per item)
    - 422: nothing created, or batch larger than VARIANT_BULK_MAX_ITEMS
    - 400: malformed body
    - 404: product not found in this tenant
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or "variants" not in payload:
        return jsonify({"error": "ValidationError", "message": "Body must be {\"variants\": [...]}"}), 400

    try:
        result = bulk_create_variants(
            tenant_id=g.tenant_id,
            product_id=product_id,
            items=payload["variants"],
            actor=g.actor,
            unique_skus=bool(payload.get("unique_skus", False)),
        )
    except BatchTooLarge as e:
        return jsonify(e.to_dict()), 422
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except TenantAccessError:
        return jsonify({"error": "NotFound", "message": "Product not found"}), 404
    except Exception:
        current_app.logger.exception("Failed to bulk create variants")
        return jsonify({"error": "Internal server error"}), 500

    status = 201 if result.created_count > 0 else 422
    return jsonify(result.to_dict()), status


@variants_bp.get("/products/<int:product_id>/variants")
@require_tenant
def list_variants_route(product_id: int):
    include_inactive = request.args.get("include_inactive", "true").lower() != "false"
    try:
        variants = list_variants(tenant_id=g.tenant_id, product_id=product_id, include_inactive=include_inactive)
    except TenantAccessError:
        return jsonify({"error": "NotFound", "message": "Product not found"}), 404

    return jsonify({"items": [v.to_dict() for v in variants], "count": len(variants)})


@variants_bp.get("/products/<int:product_id>/stock-summary")
@require_tenant
def stock_summary_route(product_id: int):
    try:
        summary = get_product_stock_summary(tenant_id=g.tenant_id, product_id=product_id)
    except TenantAccessError:
        return jsonify({"error": "NotFound", "message": "Product not found"}), 404

    return jsonify(summary)


def _parse_modifiers(raw) -> dict:
    if raw is None:
        return {}
    if not isinstance(raw, dict) or not all(isinstance(v, dict) for v in raw.values()):
        raise ValidationError("price_modifiers must map attribute name -> {value: amount}")
    return raw


@variants_bp.post("/variants/matrix/preview")
@require_tenant
def matrix_preview_route():
    """
    Expand attributes into draft variant cells. Nothing is persisted.

    Body: {attributes: [{name, values}], base_sku, base_price, price_modifiers?, sanitize?, sku_pattern?}

    sku_pattern is one of attributes (default), sequential, incremental.
    """
    payload = request.get_json(silent=True) or {}

    try:
        modifiers = _parse_modifiers(payload.get("price_modifiers"))
        attrs = attributes_from_payload(payload.get("attributes"))
        cells = generate_matrix(
            attrs,
            str(payload.get("base_sku") or ""),
            payload.get("base_price", 0),
            modifiers,
            sanitize=bool(payload.get("sanitize", False)),
            sku_pattern=str(payload.get("sku_pattern") or SKU_PATTERN_ATTRIBUTES),
        )
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except InvalidAttributeSet as e:
        return jsonify(e.to_dict()), 422

    count = combination_count(attrs)
    return jsonify({
        "combination_count": count,
        "warning": combination_advisory(count, _warn_threshold()),
        "cells": [c.to_dict() for c in cells],
    })


def _cell_from_payload(index: int, raw) -> MatrixCell:
    if not isinstance(raw, dict):
        raise ValidationError(f"cells[{index}] must be an object")

    pairs = raw.get("attributes") or []
    if not isinstance(pairs, list) or not all(isinstance(p, dict) and "name" in p and "value" in p for p in pairs):
        raise ValidationError(f"cells[{index}].attributes must be a list of {{name, value}}")
    combination = tuple((str(p["name"]), str(p["value"])) for p in pairs)

    price = raw.get("price")
    if price is not None:
        try:
            price = to_decimal(price, field_name=f"cells[{index}].price")
        except ValueError as e:
            raise ValidationError(str(e))

    return MatrixCell(
        id=str(raw.get("id") or index),
        combination=combination,
        sku=str(raw.get("sku") or ""),
        name=str(raw.get("name") or ""),
        price=price,
        stock=raw.get("stock"),
    )


@variants_bp.post("/variants/matrix/validate")
@require_tenant
def matrix_validate_route():
    """
    Validate draft cells as a batch.

    Body: {cells: [{id?, sku, name, price, stock, attributes?}]}
    Returns: {valid, errors: {cell_id: [messages]}, warnings}
    """
    payload = request.get_json(silent=True) or {}
    raw_cells = payload.get("cells")
    if not isinstance(raw_cells, list):
        return jsonify({"error": "ValidationError", "message": "cells must be a list"}), 400

    try:
        cells = [_cell_from_payload(i, raw) for i, raw in enumerate(raw_cells)]
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400

    report = build_report(cells, warn_threshold=_warn_threshold())
    return jsonify(report.to_dict())


@variants_bp.get("/variants/<int:variant_id>")
@require_tenant
def get_variant_route(variant_id: int):
    try:
        variant = get_variant(tenant_id=g.tenant_id, variant_id=variant_id)
    except VariantNotFound as e:
        return jsonify(e.to_dict()), 404

    return jsonify(variant.to_dict())


@variants_bp.patch("/variants/<int:variant_id>")
@require_tenant
def update_variant_route(variant_id: int):
    """
    Edit a variant's descriptive fields.

    stock / reserved_stock are not writable here (400); use the stock endpoints.
    Returns 409 when the new SKU is taken within the tenant.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "ValidationError", "message": "Body must be a JSON object"}), 400

    try:
        variant = update_variant(tenant_id=g.tenant_id, variant_id=variant_id, payload=payload)
    except VariantNotFound as e:
        return jsonify(e.to_dict()), 404
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except DuplicateSku as e:
        return jsonify(e.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to update variant")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(variant.to_dict())


@variants_bp.delete("/variants/<int:variant_id>")
@require_tenant
def delete_variant_route(variant_id: int):
    try:
        delete_variant(tenant_id=g.tenant_id, variant_id=variant_id)
    except VariantNotFound as e:
        return jsonify(e.to_dict()), 404
    except ConflictError as e:
        return jsonify({"error": "Conflict", "message": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete variant")
        return jsonify({"error": "Internal server error"}), 500

    return "", 204


@variants_bp.patch("/products/<int:product_id>/variants/bulk")
@require_tenant
def bulk_update_route(product_id: int):
    """
    Edit several variants of a product.

    Body: {"variants": [{id, ...fields}, ...]}

    Returns:
    - 200: at least one variant updated (failures listed per item)
    - 422: nothing updated, or batch larger than VARIANT_BULK_MAX_ITEMS
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or "variants" not in payload:
        return jsonify({"error": "ValidationError", "message": "Body must be {\"variants\": [...]}"}), 400

    try:
        result = bulk_update_variants(tenant_id=g.tenant_id, product_id=product_id, items=payload["variants"])
    except BatchTooLarge as e:
        return jsonify(e.to_dict()), 422
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except TenantAccessError:
        return jsonify({"error": "NotFound", "message": "Product not found"}), 404
    except Exception:
        current_app.logger.exception("Failed to bulk update variants")
        return jsonify({"error": "Internal server error"}), 500

    status = 200 if result.updated else 422
    return jsonify(result.to_dict()), status


@variants_bp.delete("/products/<int:product_id>/variants/bulk")
@require_tenant
def bulk_delete_route(product_id: int):
    """
    Soft-delete several variants of a product.

    Body: {"variant_ids": [1, 2, ...]}
    Returns: {deleted_count, deleted_ids, failures: [{id, message}]}
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or "variant_ids" not in payload:
        return jsonify({"error": "ValidationError", "message": "Body must be {\"variant_ids\": [...]}"}), 400

    try:
        result = bulk_delete_variants(
            tenant_id=g.tenant_id, product_id=product_id, variant_ids=payload["variant_ids"]
        )
    except BatchTooLarge as e:
        return jsonify(e.to_dict()), 422
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except TenantAccessError:
        return jsonify({"error": "NotFound", "message": "Product not found"}), 404
    except Exception:
        current_app.logger.exception("Failed to bulk delete variants")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result)
