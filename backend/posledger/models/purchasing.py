from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

PO_STATUS_PENDING = "PENDING"
PO_STATUS_PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
PO_STATUS_FULLY_RECEIVED = "FULLY_RECEIVED"
PO_STATUS_CANCELLED = "CANCELLED"

PO_TERMINAL_STATUSES = frozenset({PO_STATUS_FULLY_RECEIVED, PO_STATUS_CANCELLED})


class PurchaseOrder(db.Model):
    """
    Purchase order placed with a supplier.

    LIFECYCLE:
    PENDING -> PARTIALLY_RECEIVED -> FULLY_RECEIVED, or -> CANCELLED.
    Once receiving starts, status is derived from the items' received
    quantities and never set directly. FULLY_RECEIVED and CANCELLED are terminal.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    status = db.Column(db.String(24), nullable=False, default=PO_STATUS_PENDING, index=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    expected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier")
    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderItem.id",
        cascade="all, delete-orphan",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in PO_TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "status": self.status,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "expected_at": to_utc_z(self.expected_at) if self.expected_at else None,
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_po_items_order_product"),
        db.CheckConstraint("quantity_ordered > 0", name="ck_po_items_ordered_positive"),
        db.CheckConstraint(
            "quantity_received >= 0 AND quantity_received <= quantity_ordered",
            name="ck_po_items_received_bounds",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_ordered = db.Column(db.Integer, nullable=False)
    quantity_received = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product")

    @property
    def quantity_outstanding(self) -> int:
        return self.quantity_ordered - (self.quantity_received or 0)

    @property
    def is_complete(self) -> bool:
        return (self.quantity_received or 0) >= self.quantity_ordered

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "quantity_ordered": self.quantity_ordered,
            "quantity_received": self.quantity_received,
            "quantity_outstanding": self.quantity_outstanding,
            "unit_cost_cents": self.unit_cost_cents,
        }
