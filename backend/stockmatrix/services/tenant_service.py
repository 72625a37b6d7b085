"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Every request is scoped to a tenant, and cross-tenant access must be denied
without revealing that the row exists elsewhere.

SECURITY INVARIANTS:
1. Every tenant-scoped request has g.tenant_id set (see decorators.require_tenant)
2. Product / variant ids from client input are validated against the tenant
3. A row owned by another tenant is reported exactly like a missing row

USAGE:
    from .tenant_service import require_product_in_tenant

    product = require_product_in_tenant(product_id, g.tenant_id)
"""

from flask import current_app

from ..extensions import db
from ..models import Product, Tenant


class TenantAccessError(Exception):
    """Raised when a tenant is unknown/inactive or cross-tenant access is attempted."""
    pass


def validate_tenant_active(tenant_id: int) -> Tenant:
    """
    Validate that a tenant exists and is active.

    Raises:
        TenantAccessError if the tenant doesn't exist or is inactive
    """
    tenant = db.session.get(Tenant, tenant_id)

    if not tenant:
        raise TenantAccessError("Tenant not found")

    if not tenant.is_active:
        raise TenantAccessError("Tenant is not active")

    return tenant


def require_product_in_tenant(product_id: int, tenant_id: int) -> Product:
    """
    Validate that a product belongs to the specified tenant.

    Raises:
        TenantAccessError if the product doesn't exist or belongs to another tenant
    """
    product = db.session.get(Product, product_id)

    if not product:
        raise TenantAccessError("Product not found")

    if product.tenant_id != tenant_id:
        _log_cross_tenant_attempt(
            f"Product {product_id} belongs to tenant {product.tenant_id}, not {tenant_id}"
        )
        raise TenantAccessError("Product not found")  # Don't reveal it exists in another tenant

    return product


def scoped_query(model, tenant_id: int):
    """
    Base query for a model with a tenant_id column, filtered to one tenant.

    Usage:
        variants = scoped_query(ProductVariant, tenant_id).filter_by(product_id=7).all()
    """
    return db.session.query(model).filter(model.tenant_id == tenant_id)


def _log_cross_tenant_attempt(reason: str) -> None:
    current_app.logger.warning("Cross-tenant access denied: %s", reason)
