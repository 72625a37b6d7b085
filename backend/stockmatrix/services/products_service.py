# backend/stockmatrix/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are tenant-scoped.
- create_product requires an active tenant
- SKU uniqueness is (tenant_id, sku)
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product
from ..validation import PRODUCT_CREATE_POLICY, ConflictError, validate_payload
from .tenant_service import validate_tenant_active

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "price_cents", "cost_price_cents", "is_active"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def create_product(*, tenant_id: int, payload: dict) -> Product:
    """
    Create a product from a raw payload ({sku, name, price?, cost_price?}).

    Raises:
        TenantAccessError: tenant unknown or inactive
        ValidationError: bad payload
        ConflictError: SKU already exists for this tenant
    """
    validate_tenant_active(tenant_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)

    existing = (
        db.session.query(Product)
        .filter(Product.tenant_id == tenant_id, Product.sku == patch["sku"])
        .first()
    )
    if existing:
        raise ConflictError("SKU already exists for this tenant.")

    p = Product(tenant_id=tenant_id)
    apply_product_patch(p, patch)
    if p.price_cents is None:
        p.price_cents = 0

    db.session.add(p)
    db.session.commit()
    current_app.logger.info("Created product id=%s sku=%s tenant=%s", p.id, p.sku, tenant_id)
    return p
