from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .money import cents_to_decimal, cents_to_str


STOCK_STATUS_OUT = "out_of_stock"
STOCK_STATUS_CRITICAL = "critical"
STOCK_STATUS_LOW = "low"
STOCK_STATUS_NORMAL = "normal"


class ProductVariant(db.Model):
    """
    Sellable variant of a product (one cell of a committed matrix).

    STOCK INVARIANTS (enforced by the ledger service and by CHECK constraints):
    - stock >= 0
    - reserved_stock >= 0
    - reserved_stock <= stock
    - available_stock = stock - reserved_stock is derived, never stored

    CONCURRENCY:
    version_id is SQLAlchemy's optimistic lock column. A flush that updates a row
    whose version changed underneath raises StaleDataError; the ledger retries.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_product_variants_tenant_sku"),
        db.CheckConstraint("stock >= 0", name="stock_non_negative"),
        db.CheckConstraint("reserved_stock >= 0", name="reserved_non_negative"),
        db.CheckConstraint("reserved_stock <= stock", name="reserved_within_stock"),
        db.Index("ix_product_variants_tenant_product", "tenant_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Ordered [{"name": ..., "value": ...}] pairs in attribute declaration order
    attributes = db.Column(db.JSON, nullable=False, default=list)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_point = db.Column(db.Integer, nullable=True)
    low_stock_alert_enabled = db.Column(db.Boolean, nullable=False, default=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    # Soft delete: the row and its ledger history stay, the SKU stays taken
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} sku={self.sku!r} stock={self.stock} reserved={self.reserved_stock}>"

    @property
    def available_stock(self) -> int:
        return (self.stock or 0) - (self.reserved_stock or 0)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def price(self):
        return cents_to_decimal(self.price_cents)

    @property
    def stock_status(self) -> str:
        stock = self.stock or 0
        if stock <= 0:
            return STOCK_STATUS_OUT
        if self.reorder_point is None:
            return STOCK_STATUS_NORMAL
        if stock <= self.reorder_point / 2:
            return STOCK_STATUS_CRITICAL
        if stock <= self.reorder_point:
            return STOCK_STATUS_LOW
        return STOCK_STATUS_NORMAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "attributes": list(self.attributes or []),
            "price": cents_to_str(self.price_cents),
            "cost_price": cents_to_str(self.cost_price_cents),
            "stock": self.stock,
            "reserved_stock": self.reserved_stock,
            "available_stock": self.available_stock,
            "reorder_point": self.reorder_point,
            "low_stock_alert_enabled": self.low_stock_alert_enabled,
            "stock_status": self.stock_status,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only stock ledger row.

    counter says which variant counter moved: "stock" for restock, deduction
    and correction; "reserved" for reservation and release. quantity_before /
    quantity_after record that counter, so a variant's stock always equals the
    running sum of its stock-counter quantity_change values.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_tenant_variant_occurred", "tenant_id", "variant_id", "occurred_at"),
        db.Index("ix_invtx_tenant_variant_type", "tenant_id", "variant_id", "transaction_type"),
        {"sqlite_autoincrement": True},
    )

    TYPE_RESTOCK = "restock"
    TYPE_DEDUCTION = "deduction"
    TYPE_RESERVATION = "reservation"
    TYPE_RELEASE = "release"
    TYPE_CORRECTION = "correction"

    TYPES = (TYPE_RESTOCK, TYPE_DEDUCTION, TYPE_RESERVATION, TYPE_RELEASE, TYPE_CORRECTION)

    COUNTER_STOCK = "stock"
    COUNTER_RESERVED = "reserved"

    TYPE_LABELS = {
        TYPE_RESTOCK: "Restock",
        TYPE_DEDUCTION: "Stock Deduction",
        TYPE_RESERVATION: "Reservation",
        TYPE_RELEASE: "Reservation Release",
        TYPE_CORRECTION: "Manual Adjustment",
    }

    REASON_LABELS = {
        "purchase": "Purchase",
        "waste": "Waste",
        "damage": "Damage",
        "count_adjustment": "Count Adjustment",
        "production": "Production",
        "sale": "Sale",
        "initial_stock": "Initial Stock",
        "correction": "Correction",
        "manual": "Manual",
        "other": "Other",
    }

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    counter = db.Column(db.String(16), nullable=False, default=COUNTER_STOCK)

    quantity_change = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.String(255), nullable=True)
    actor = db.Column(db.String(120), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    variant = db.relationship("ProductVariant", backref=db.backref("transactions", lazy="dynamic"))

    @property
    def is_increase(self) -> bool:
        return self.quantity_change > 0

    @property
    def is_decrease(self) -> bool:
        return self.quantity_change < 0

    @property
    def direction(self) -> str:
        if self.is_increase:
            return "in"
        if self.is_decrease:
            return "out"
        return "neutral"

    @property
    def type_label(self) -> str:
        return self.TYPE_LABELS.get(self.transaction_type, self.transaction_type)

    @property
    def reason_label(self) -> str | None:
        if not self.reason:
            return None
        return self.REASON_LABELS.get(self.reason, self.reason.replace("_", " ").title())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "variant_id": self.variant_id,
            "transaction_type": self.transaction_type,
            "type_label": self.type_label,
            "counter": self.counter,
            "quantity_change": self.quantity_change,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "absolute_change": abs(self.quantity_change),
            "is_increase": self.is_increase,
            "is_decrease": self.is_decrease,
            "direction": self.direction,
            "reason": self.reason,
            "reason_label": self.reason_label,
            "notes": self.notes,
            "actor": self.actor,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
