# Overview: Variant templates; reusable attribute sets previewed and applied through the matrix generator.

"""
Variant Template Service

VISIBILITY:
- A tenant sees its own templates plus system templates (tenant_id NULL).
- System templates are read-only for tenants (TemplateReadOnly).
- Another tenant's template is reported exactly like a missing one.

APPLY:
- The template's attributes, sku_pattern and price_modifiers are expanded by
  generate_matrix with the product's SKU and price as the base.
- A product that already has variants is refused unless replace_existing is
  set; the current variants are then soft-deleted first.
- Cells are committed with bulk_create_variants(unique_skus=True): a SKU taken
  elsewhere in the tenant gets a numeric suffix instead of failing.
- usage_count / last_used_at move once per apply that created something.
"""
from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import or_

from ..errors import BatchTooLarge, InvalidAttributeSet, TemplateNotFound, TemplateReadOnly
from ..extensions import db
from ..models import Product, ProductVariant, VariantTemplate
from ..models.money import cents_to_decimal
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    validate_payload,
)
from .attribute_set import attributes_from_payload
from .combination_service import (
    SKU_PATTERN_ATTRIBUTES,
    SKU_PATTERNS,
    combination_advisory,
    generate_matrix,
    to_decimal,
)
from .tenant_service import require_product_in_tenant
from .variant_service import BulkCreateResult, bulk_create_variants, delete_variant

CONFIGURATION_KEYS = {"attributes", "sku_pattern", "price_modifiers", "default_values"}
DEFAULT_VALUE_KEYS = {"stock", "reorder_point"}

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    return _SLUG_INVALID.sub("-", (text or "").lower()).strip("-")


def _parse_modifiers(raw) -> dict[str, dict[str, str]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict) or not all(isinstance(v, dict) for v in raw.values()):
        raise ValidationError("configuration.price_modifiers must map attribute name -> {value: amount}")
    clean: dict[str, dict[str, str]] = {}
    for name, amounts in raw.items():
        for value, amount in amounts.items():
            try:
                delta = to_decimal(amount, field_name=f"modifier {name}={value}")
            except ValueError as e:
                raise ValidationError(str(e))
            clean.setdefault(str(name), {})[str(value)] = str(delta)
    return clean


def _parse_default_values(raw) -> dict:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError("configuration.default_values must be an object")
    unknown = set(raw) - DEFAULT_VALUE_KEYS
    if unknown:
        raise ValidationError(f"Unknown default_values keys: {', '.join(sorted(unknown))}")

    stock = coerce_int(raw.get("stock", 0), "default_values.stock")
    if stock < 0:
        raise ValidationError("default_values.stock must be >= 0")

    reorder_point = raw.get("reorder_point")
    if reorder_point is not None:
        reorder_point = coerce_int(reorder_point, "default_values.reorder_point")
        if reorder_point < 0:
            raise ValidationError("default_values.reorder_point must be >= 0")

    return {"stock": stock, "reorder_point": reorder_point}


def parse_configuration(raw) -> dict:
    """
    Validate a template configuration and return its normalized form.

    Raises ValidationError on the first problem; attribute problems carry the
    InvalidAttributeSet message.
    """
    if not isinstance(raw, dict):
        raise ValidationError("configuration must be an object")
    unknown = set(raw) - CONFIGURATION_KEYS
    if unknown:
        raise ValidationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    try:
        attrs = attributes_from_payload(raw.get("attributes"))
    except InvalidAttributeSet as e:
        raise ValidationError(f"configuration.attributes: {e.message}")

    pattern = raw.get("sku_pattern") or SKU_PATTERN_ATTRIBUTES
    if pattern not in SKU_PATTERNS:
        raise ValidationError(f"configuration.sku_pattern must be one of: {', '.join(SKU_PATTERNS)}")

    return {
        "attributes": [{"name": a.name, "values": list(a.values)} for a in attrs],
        "sku_pattern": pattern,
        "price_modifiers": _parse_modifiers(raw.get("price_modifiers")),
        "default_values": _parse_default_values(raw.get("default_values")),
    }


def _configuration_field(key: str, raw):
    if raw is None:
        return key, None
    return key, parse_configuration(raw)


TEMPLATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "slug", "description", "category", "configuration", "is_active"},
    required_on_create={"name", "configuration"},
    virtual_fields={"configuration": _configuration_field},
    ignored_fields={"id", "tenant_id", "is_system", "usage_count", "last_used_at", "estimated_variant_count"},
)

TEMPLATE_MUTABLE_FIELDS = {"name", "slug", "description", "category", "configuration", "is_active"}


# ----------------------------------------------------------------------
# Reads
# ----------------------------------------------------------------------

def _visible(tenant_id: int):
    return db.session.query(VariantTemplate).filter(
        or_(VariantTemplate.tenant_id == tenant_id, VariantTemplate.tenant_id.is_(None))
    )


def list_templates(
    *,
    tenant_id: int,
    search: str | None = None,
    category: str | None = None,
    is_active: bool | None = None,
) -> list[VariantTemplate]:
    """The tenant's templates plus system templates; system first, then most used."""
    query = _visible(tenant_id)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                db.func.lower(VariantTemplate.name).like(pattern),
                db.func.lower(VariantTemplate.description).like(pattern),
            )
        )
    if category:
        query = query.filter(VariantTemplate.category == category)
    if is_active is not None:
        query = query.filter(VariantTemplate.is_active.is_(is_active))
    return query.order_by(
        VariantTemplate.is_system.desc(),
        VariantTemplate.usage_count.desc(),
        VariantTemplate.name.asc(),
    ).all()


def get_template(*, tenant_id: int, template_id: int) -> VariantTemplate:
    template = db.session.get(VariantTemplate, template_id)
    if template is None or template.tenant_id not in (None, tenant_id):
        raise TemplateNotFound(f"Template {template_id} not found")
    return template


# ----------------------------------------------------------------------
# Writes
# ----------------------------------------------------------------------

def _resolve_slug(patch: dict, *, fallback_name: str) -> None:
    slug = slugify(patch.get("slug") or fallback_name)
    if not slug:
        raise ValidationError("slug must contain at least one letter or digit")
    patch["slug"] = slug


def _check_slug_free(tenant_id: int | None, slug: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(VariantTemplate).filter(VariantTemplate.slug == slug)
    if tenant_id is None:
        query = query.filter(VariantTemplate.tenant_id.is_(None))
    else:
        query = query.filter(VariantTemplate.tenant_id == tenant_id)
    if exclude_id is not None:
        query = query.filter(VariantTemplate.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Template slug '{slug}' already exists")


def create_template(*, tenant_id: int | None, payload, is_system: bool = False) -> VariantTemplate:
    """
    Create a template. tenant_id None with is_system=True creates a system template.

    Raises ValidationError for a bad payload, ConflictError for a taken slug.
    """
    patch = validate_payload(model=VariantTemplate, payload=payload, policy=TEMPLATE_POLICY, partial=False)
    _resolve_slug(patch, fallback_name=patch["name"])
    _check_slug_free(tenant_id, patch["slug"])

    template = VariantTemplate(tenant_id=tenant_id, is_system=is_system, usage_count=0)
    for k, v in patch.items():
        if k in TEMPLATE_MUTABLE_FIELDS:
            setattr(template, k, v)

    db.session.add(template)
    db.session.commit()
    current_app.logger.info(
        "Created variant template id=%s slug=%s tenant=%s", template.id, template.slug, tenant_id
    )
    return template


def _owned(tenant_id: int, template_id: int) -> VariantTemplate:
    template = get_template(tenant_id=tenant_id, template_id=template_id)
    if template.is_system or template.tenant_id is None:
        raise TemplateReadOnly("System templates cannot be modified")
    return template


def update_template(*, tenant_id: int, template_id: int, payload) -> VariantTemplate:
    template = _owned(tenant_id, template_id)
    patch = validate_payload(model=VariantTemplate, payload=payload, policy=TEMPLATE_POLICY, partial=True)
    if "slug" in patch:
        _resolve_slug(patch, fallback_name=template.name)
        _check_slug_free(tenant_id, patch["slug"], exclude_id=template.id)

    for k, v in patch.items():
        if k in TEMPLATE_MUTABLE_FIELDS:
            setattr(template, k, v)
    db.session.commit()
    return template


def delete_template(*, tenant_id: int, template_id: int) -> None:
    template = _owned(tenant_id, template_id)
    db.session.delete(template)
    db.session.commit()
    current_app.logger.info("Deleted variant template id=%s tenant=%s", template_id, tenant_id)


# ----------------------------------------------------------------------
# Preview / apply
# ----------------------------------------------------------------------

def _template_cells(template: VariantTemplate, product: Product):
    config = parse_configuration(template.configuration)
    try:
        attrs = attributes_from_payload(config["attributes"])
        cells = generate_matrix(
            attrs,
            product.sku,
            cents_to_decimal(product.price_cents or 0),
            config["price_modifiers"],
            base_stock=config["default_values"]["stock"],
            sku_pattern=config["sku_pattern"],
        )
    except InvalidAttributeSet as e:
        raise ValidationError(f"Template configuration is invalid: {e.message}")
    return config, cells


def _warn_threshold() -> int:
    return current_app.config.get("VARIANT_COMBINATION_WARN_THRESHOLD", 500)


def preview_template(*, tenant_id: int, template_id: int, product_id: int) -> dict:
    """Expand a template against a product without saving anything."""
    template = get_template(tenant_id=tenant_id, template_id=template_id)
    product = require_product_in_tenant(product_id, tenant_id)
    _config, cells = _template_cells(template, product)
    return {
        "template_id": template.id,
        "product_id": product.id,
        "combination_count": len(cells),
        "warning": combination_advisory(len(cells), _warn_threshold()),
        "cells": [c.to_dict() for c in cells],
    }


def _live_variants(tenant_id: int, product_id: int) -> list[ProductVariant]:
    return (
        db.session.query(ProductVariant)
        .filter(
            ProductVariant.tenant_id == tenant_id,
            ProductVariant.product_id == product_id,
            ProductVariant.deleted_at.is_(None),
        )
        .all()
    )


def apply_template(
    *,
    tenant_id: int,
    template_id: int,
    product_id: int,
    replace_existing: bool = False,
    actor: str | None = None,
) -> BulkCreateResult:
    """
    Create a product's variants from a template.

    Raises:
        TemplateNotFound / TenantAccessError: template or product not visible
        ConflictError: template inactive, or the product already has variants
            and replace_existing is not set (or one of them holds reservations)
        BatchTooLarge: the template expands past VARIANT_BULK_MAX_ITEMS
    """
    template = get_template(tenant_id=tenant_id, template_id=template_id)
    if not template.is_active:
        raise ConflictError("Template is inactive")
    product = require_product_in_tenant(product_id, tenant_id)

    config, cells = _template_cells(template, product)

    existing = _live_variants(tenant_id, product_id)
    if existing and not replace_existing:
        raise ConflictError(
            f"Product already has {len(existing)} variant(s); set replace_existing to replace them"
        )

    reorder_point = config["default_values"]["reorder_point"]
    items = []
    for cell in cells:
        item = {
            "sku": cell.sku,
            "name": cell.name,
            "attributes": cell.attributes,
            "price": str(cell.price),
            "stock": cell.stock,
        }
        if reorder_point is not None:
            item["reorder_point"] = reorder_point
        items.append(item)

    # Nothing is deleted unless the whole template can be created
    max_items = current_app.config.get("VARIANT_BULK_MAX_ITEMS", 500)
    if len(items) > max_items:
        raise BatchTooLarge(size=len(items), limit=max_items)
    reserved = [v for v in existing if v.reserved_stock > 0]
    if reserved:
        raise ConflictError(
            f"{len(reserved)} existing variant(s) hold reservations; release them before replacing"
        )

    for variant in existing:
        delete_variant(tenant_id=tenant_id, variant_id=variant.id)

    result = bulk_create_variants(
        tenant_id=tenant_id,
        product_id=product_id,
        items=items,
        max_items=max_items,
        actor=actor,
        unique_skus=True,
    )

    if result.created_count:
        template.usage_count = (template.usage_count or 0) + 1
        template.last_used_at = utcnow()
        db.session.commit()

    current_app.logger.info(
        "Applied variant template id=%s product=%s tenant=%s replaced=%d created=%d failed=%d",
        template.id, product_id, tenant_id, len(existing), result.created_count, result.failed_count,
    )
    return result


# ----------------------------------------------------------------------
# System templates
# ----------------------------------------------------------------------

SYSTEM_TEMPLATES = [
    {
        "name": "Clothing",
        "slug": "clothing",
        "description": "Size, color and material variations for apparel",
        "category": "Fashion",
        "configuration": {
            "attributes": [
                {"name": "Size", "values": ["XS", "S", "M", "L", "XL"]},
                {"name": "Color", "values": ["Black", "White", "Navy", "Gray"]},
                {"name": "Material", "values": ["Cotton", "Polyester", "Cotton-Poly Blend"]},
            ],
            "sku_pattern": "attributes",
            "price_modifiers": {"Size": {"XL": "5.00"}, "Material": {"Cotton": "10.00", "Cotton-Poly Blend": "5.00"}},
            "default_values": {"stock": 10, "reorder_point": 5},
        },
    },
    {
        "name": "Footwear",
        "slug": "footwear",
        "description": "Shoe sizes, colors and widths",
        "category": "Fashion",
        "configuration": {
            "attributes": [
                {"name": "Size", "values": ["36", "37", "38", "39", "40", "41", "42", "43", "44", "45", "46"]},
                {"name": "Color", "values": ["Black", "White", "Brown", "Navy"]},
                {"name": "Width", "values": ["Regular", "Wide"]},
            ],
            "sku_pattern": "attributes",
            "price_modifiers": {"Width": {"Wide": "5.00"}},
            "default_values": {"stock": 5, "reorder_point": 2},
        },
    },
    {
        "name": "Beverage Sizes",
        "slug": "beverage-sizes",
        "description": "Cup sizes with a sequential SKU per variant",
        "category": "Food & Beverage",
        "configuration": {
            "attributes": [{"name": "Size", "values": ["Small", "Medium", "Large"]}],
            "sku_pattern": "sequential",
            "price_modifiers": {"Size": {"Medium": "0.50", "Large": "1.00"}},
            "default_values": {"stock": 0},
        },
    },
]


def seed_system_templates() -> int:
    """Create missing system templates; returns how many were created."""
    created = 0
    for definition in SYSTEM_TEMPLATES:
        exists = (
            db.session.query(VariantTemplate)
            .filter(VariantTemplate.tenant_id.is_(None), VariantTemplate.slug == definition["slug"])
            .first()
        )
        if exists is not None:
            continue
        create_template(tenant_id=None, payload=dict(definition), is_system=True)
        created += 1
    return created
