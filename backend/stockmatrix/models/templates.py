from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class VariantTemplate(db.Model):
    """
    Reusable attribute set for generating a product's variant matrix.

    tenant_id NULL marks a system template: visible to every tenant, editable by none.

    configuration:
        {
            "attributes": [{"name": "Size", "values": ["S", "M"]}, ...],
            "sku_pattern": "attributes" | "sequential" | "incremental",
            "price_modifiers": {"Size": {"M": "2.00"}},
            "default_values": {"stock": 0, "reorder_point": null}
        }
    """
    __tablename__ = "variant_templates"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "slug", name="uq_variant_templates_tenant_slug"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=True, index=True)

    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(64), nullable=True, index=True)

    configuration = db.Column(db.JSON, nullable=False, default=dict)

    is_system = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    usage_count = db.Column(db.Integer, nullable=False, default=0)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<VariantTemplate id={self.id} slug={self.slug!r} tenant_id={self.tenant_id}>"

    @property
    def estimated_variant_count(self) -> int:
        total = 1
        attributes = (self.configuration or {}).get("attributes") or []
        if not attributes:
            return 0
        for attr in attributes:
            total *= len(attr.get("values") or [])
        return total

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "category": self.category,
            "configuration": dict(self.configuration or {}),
            "is_system": self.is_system,
            "is_active": self.is_active,
            "usage_count": self.usage_count,
            "last_used_at": to_utc_z(self.last_used_at),
            "estimated_variant_count": self.estimated_variant_count,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
