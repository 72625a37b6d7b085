# Overview: Flask API routes for variant templates; parses input and returns JSON responses.

"""
Variant template routes with multi-tenant support.

MULTI-TENANT: A tenant sees its own templates plus system templates; system
templates are read-only (403).

- GET    /api/variant-templates                 list (search?, category?, is_active?)
- POST   /api/variant-templates                 create
- GET    /api/variant-templates/<id>            one template
- PATCH  /api/variant-templates/<id>            edit
- DELETE /api/variant-templates/<id>            delete
- POST   /api/variant-templates/<id>/preview    expand against a product (nothing saved)
- POST   /api/variant-templates/<id>/apply      create a product's variants from the template
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import BatchTooLarge, TemplateNotFound, TemplateReadOnly
from ..services.template_service import (
    apply_template,
    create_template,
    delete_template,
    get_template,
    list_templates,
    preview_template,
    update_template,
)
from ..services.tenant_service import TenantAccessError
from ..validation import ConflictError, ValidationError, coerce_int

templates_bp = Blueprint("templates", __name__, url_prefix="/api/variant-templates")


def _bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() in ("1", "true", "yes")


def _product_id_from_body(payload: dict) -> int:
    if payload.get("product_id") is None:
        raise ValidationError("product_id is required")
    return coerce_int(payload["product_id"], "product_id")


@templates_bp.get("")
@require_tenant
def list_templates_route():
    templates = list_templates(
        tenant_id=g.tenant_id,
        search=request.args.get("search"),
        category=request.args.get("category"),
        is_active=_bool_arg("is_active"),
    )
    return jsonify({"items": [t.to_dict() for t in templates], "count": len(templates)})


@templates_bp.post("")
@require_tenant
def create_template_route():
    """
    Body: {name, configuration: {attributes, sku_pattern?, price_modifiers?, default_values?},
           slug?, description?, category?, is_active?}

    slug defaults to the slugified name.
    """
    payload = request.get_json(silent=True)
    try:
        template = create_template(tenant_id=g.tenant_id, payload=payload)
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": "Conflict", "message": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create variant template")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(template.to_dict()), 201


@templates_bp.get("/<int:template_id>")
@require_tenant
def get_template_route(template_id: int):
    try:
        template = get_template(tenant_id=g.tenant_id, template_id=template_id)
    except TemplateNotFound as e:
        return jsonify(e.to_dict()), 404

    return jsonify(template.to_dict())


@templates_bp.patch("/<int:template_id>")
@require_tenant
def update_template_route(template_id: int):
    payload = request.get_json(silent=True)
    try:
        template = update_template(tenant_id=g.tenant_id, template_id=template_id, payload=payload)
    except TemplateNotFound as e:
        return jsonify(e.to_dict()), 404
    except TemplateReadOnly as e:
        return jsonify(e.to_dict()), 403
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": "Conflict", "message": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update variant template")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(template.to_dict())


@templates_bp.delete("/<int:template_id>")
@require_tenant
def delete_template_route(template_id: int):
    try:
        delete_template(tenant_id=g.tenant_id, template_id=template_id)
    except TemplateNotFound as e:
        return jsonify(e.to_dict()), 404
    except TemplateReadOnly as e:
        return jsonify(e.to_dict()), 403

    return "", 204


@templates_bp.post("/<int:template_id>/preview")
@require_tenant
def preview_template_route(template_id: int):
    """Body: {product_id}. Returns {combination_count, warning, cells}."""
    payload = request.get_json(silent=True) or {}
    try:
        product_id = _product_id_from_body(payload)
        preview = preview_template(tenant_id=g.tenant_id, template_id=template_id, product_id=product_id)
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except TemplateNotFound as e:
        return jsonify(e.to_dict()), 404
    except TenantAccessError:
        return jsonify({"error": "NotFound", "message": "Product not found"}), 404

    return jsonify(preview)


@templates_bp.post("/<int:template_id>/apply")
@require_tenant
def apply_template_route(template_id: int):
    """
    Body: {product_id, replace_existing?: bool}

    Returns:
    - 201: variants created (bulk create result)
    - 409: product already has variants and replace_existing is not set
    - 422: template expands past VARIANT_BULK_MAX_ITEMS, or nothing was created
    """
    payload = request.get_json(silent=True) or {}
    try:
        product_id = _product_id_from_body(payload)
        result = apply_template(
            tenant_id=g.tenant_id,
            template_id=template_id,
            product_id=product_id,
            replace_existing=bool(payload.get("replace_existing", False)),
            actor=g.actor,
        )
    except ValidationError as e:
        return jsonify({"error": "ValidationError", "message": str(e)}), 400
    except TemplateNotFound as e:
        return jsonify(e.to_dict()), 404
    except TenantAccessError:
        return jsonify({"error": "NotFound", "message": "Product not found"}), 404
    except ConflictError as e:
        return jsonify({"error": "Conflict", "message": str(e)}), 409
    except BatchTooLarge as e:
        return jsonify(e.to_dict()), 422
    except Exception:
        current_app.logger.exception("Failed to apply variant template")
        return jsonify({"error": "Internal server error"}), 500

    status = 201 if result.created_count > 0 else 422
    return jsonify(result.to_dict()), status
