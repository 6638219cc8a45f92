from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Return(db.Model):
    """
    Customer return against a completed sale.

    Each returned item re-enters stock through one CUSTOMER_RETURN movement
    correlated with both this return and the original sale. Processing a
    return does not change the original sale's status.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.CheckConstraint("refunded_amount_cents >= 0", name="ck_returns_refund_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    original_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    reason = db.Column(db.Text, nullable=True)
    refunded_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    original_sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    items = db.relationship(
        "ReturnItem",
        backref="return_doc",
        lazy=True,
        order_by="ReturnItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_sale_id": self.original_sale_id,
            "processed_by_user_id": self.processed_by_user_id,
            "reason": self.reason,
            "refunded_amount_cents": self.refunded_amount_cents,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class ReturnItem(db.Model):
    __tablename__ = "return_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }
