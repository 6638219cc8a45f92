from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SALE_STATUS_COMPLETED = "COMPLETED"
SALE_STATUS_CANCELLED = "CANCELLED"


class Sale(db.Model):
    """
    Completed point-of-sale transaction.

    Created atomically with its lines and with one SALE_EXIT movement per line.
    Immutable once COMPLETED except for the transition to CANCELLED, which is
    recorded with compensating stock movements (never by editing the ledger).

    All amounts in cents. discount_percent is applied before
    discount_amount_cents; tax is computed on the discounted amount.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED, index=True)
    payment_method = db.Column(db.String(32), nullable=False)
    receipt_number = db.Column(db.String(64), nullable=True, unique=True)
    notes = db.Column(db.Text, nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_total_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Cancellation audit trail
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    customer = db.relationship("Customer")
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        order_by="SaleLine.id",
        cascade="all, delete-orphan",
    )

    def quantity_sold(self, product_id: int) -> int:
        return sum(line.quantity for line in self.lines if line.product_id == product_id)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "customer_id": self.customer_id,
            "status": self.status,
            "payment_method": self.payment_method,
            "receipt_number": self.receipt_number,
            "notes": self.notes,
            "subtotal_cents": self.subtotal_cents,
            "discount_percent": str(self.discount_percent),
            "discount_amount_cents": self.discount_amount_cents,
            "discount_total_cents": self.discount_total_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "created_at": to_utc_z(self.created_at),
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancel_reason": self.cancel_reason,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """Line item with the price snapshot taken at sale time."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_subtotal_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_subtotal_cents": self.line_subtotal_cents,
            "line_total_cents": self.line_total_cents,
        }
