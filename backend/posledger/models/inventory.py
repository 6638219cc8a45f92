from __future__ import annotations

import enum
from dataclasses import dataclass

from sqlalchemy import event

from ..errors import LedgerImmutableError
from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class MovementType(str, enum.Enum):
    SALE_EXIT = "SALE_EXIT"
    PURCHASE_ENTRY = "PURCHASE_ENTRY"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
    CUSTOMER_RETURN = "CUSTOMER_RETURN"


@dataclass(frozen=True)
class MovementPolicy:
    """
    Static properties of a movement kind.

    direction: +1 for stock in, -1 for stock out. The signed quantity of every
        movement of this kind must have this sign.
    enforces_floor: outgoing, stock-constrained kinds refuse to drive
        current_stock below zero.
    """
    direction: int
    enforces_floor: bool


MOVEMENT_POLICIES: dict[MovementType, MovementPolicy] = {
    MovementType.SALE_EXIT: MovementPolicy(direction=-1, enforces_floor=True),
    MovementType.ADJUSTMENT_OUT: MovementPolicy(direction=-1, enforces_floor=True),
    MovementType.PURCHASE_ENTRY: MovementPolicy(direction=1, enforces_floor=False),
    MovementType.ADJUSTMENT_IN: MovementPolicy(direction=1, enforces_floor=False),
    MovementType.CUSTOMER_RETURN: MovementPolicy(direction=1, enforces_floor=False),
}

MANUAL_ADJUSTMENT_TYPES = frozenset({MovementType.ADJUSTMENT_IN, MovementType.ADJUSTMENT_OUT})


class InventoryMovement(db.Model):
    """
    Append-only stock ledger entry.

    GUARANTEES:
    - One row per product per stock mutation (never batched or merged)
    - quantity is signed: positive = stock in, negative = stock out
    - Every row carries the acting user
    - Rows are never updated or deleted; corrections are new compensating rows

    For every product: SUM(quantity) == products.current_stock.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint("quantity <> 0", name="ck_movements_quantity_non_zero"),
        db.Index("ix_movements_product_occurred", "product_id", "occurred_at"),
        db.Index("ix_movements_type_occurred", "movement_type", "occurred_at"),
        db.Index("ix_movements_user_occurred", "user_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    movement_type = db.Column(
        db.Enum(MovementType, native_enum=False, length=32, validate_strings=True),
        nullable=False,
    )

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # Snapshot of the projection around this movement (audit convenience)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)

    # Correlation with the originating business document
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "movement_type": self.movement_type.value,
            "user_id": self.user_id,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "reason": self.reason,
            "sale_id": self.sale_id,
            "purchase_order_id": self.purchase_order_id,
            "return_id": self.return_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


@event.listens_for(InventoryMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise LedgerImmutableError(f"Inventory movement {target.id} is immutable")


@event.listens_for(InventoryMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Inventory movement {target.id} cannot be deleted")
