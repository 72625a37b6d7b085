# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.tenant_service import TenantAccessError, validate_tenant_active

TENANT_HEADER = "X-Tenant-ID"
ACTOR_HEADER = "X-Actor"


def require_tenant(f):
    """
    Establish tenant context from the X-Tenant-ID header.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.tenant_id: The tenant ID - REQUIRED for every scoped query
    - g.actor: Optional caller name from X-Actor, recorded in the ledger

    Returns 401 if the header is missing or not an integer, 404 if the tenant
    is unknown or inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(TENANT_HEADER) or "").strip()
        if not raw:
            return jsonify({"error": "Tenant context required"}), 401

        try:
            tenant_id = int(raw)
        except ValueError:
            return jsonify({"error": "Invalid tenant id"}), 401

        try:
            validate_tenant_active(tenant_id)
        except TenantAccessError as e:
            return jsonify({"error": "TenantNotFound", "message": str(e)}), 404

        g.tenant_id = tenant_id
        g.actor = (request.headers.get(ACTOR_HEADER) or "").strip() or None

        return f(*args, **kwargs)

    return decorated_function
