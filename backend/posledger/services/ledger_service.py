# Overview: Append-only inventory movement ledger and its read-side queries.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func

from ..extensions import db
from ..models import InventoryMovement, MovementType, Product
from .unit_of_work import UnitOfWork
"""
Movement Ledger Invariants (authoritative)

- One InventoryMovement row per product per stock mutation.
- Rows are inserted inside the unit of work of the business operation they record.
- No update/delete path exists; corrections are new compensating rows.
- No business logic here: sign and floor checks belong to the stock mutator.
- For every product: SUM(quantity) == products.current_stock.
- Date range filters are inclusive on both ends.
"""


@dataclass(frozen=True)
class Correlation:
    """Business documents a movement originates from (all optional)."""
    sale_id: Optional[int] = None
    purchase_order_id: Optional[int] = None
    return_id: Optional[int] = None


NO_CORRELATION = Correlation()


def append_movement(
    uow: UnitOfWork,
    *,
    product_id: int,
    quantity: int,
    movement_type: MovementType,
    user_id: int,
    stock_before: int,
    stock_after: int,
    reason: Optional[str] = None,
    correlation: Optional[Correlation] = None,
) -> InventoryMovement:
    """
    Append one ledger entry inside ``uow``.

    Called only by the stock mutator, which has already validated the movement.
    """
    correlation = correlation or NO_CORRELATION
    movement = InventoryMovement(
        product_id=product_id,
        quantity=quantity,
        movement_type=movement_type,
        user_id=user_id,
        stock_before=stock_before,
        stock_after=stock_after,
        reason=reason,
        sale_id=correlation.sale_id,
        purchase_order_id=correlation.purchase_order_id,
        return_id=correlation.return_id,
    )
    uow.add(movement)
    uow.flush()  # ensures movement.id is assigned without committing
    return movement


def list_movements(
    *,
    product_id: Optional[int] = None,
    user_id: Optional[int] = None,
    movement_type: Optional[MovementType] = None,
    sale_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 200,
) -> list[InventoryMovement]:
    """Movements newest first; start/end are inclusive."""
    query = db.session.query(InventoryMovement)
    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    if user_id is not None:
        query = query.filter(InventoryMovement.user_id == user_id)
    if movement_type is not None:
        query = query.filter(InventoryMovement.movement_type == movement_type)
    if sale_id is not None:
        query = query.filter(InventoryMovement.sale_id == sale_id)
    if start is not None:
        query = query.filter(InventoryMovement.occurred_at >= start)
    if end is not None:
        query = query.filter(InventoryMovement.occurred_at <= end)

    return (
        query.order_by(InventoryMovement.occurred_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )


def stock_from_ledger(product_id: int) -> int:
    """Reconstruct on-hand quantity by summing the product's movements."""
    total = (
        db.session.query(func.coalesce(func.sum(InventoryMovement.quantity), 0))
        .filter(InventoryMovement.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def find_ledger_mismatches() -> list[dict]:
    """
    Every product whose current_stock differs from the sum of its ledger.

    An empty list means the projection and the ledger agree everywhere.
    """
    ledger_sums = (
        db.session.query(
            InventoryMovement.product_id.label("product_id"),
            func.sum(InventoryMovement.quantity).label("ledger_stock"),
        )
        .group_by(InventoryMovement.product_id)
        .subquery()
    )

    rows = (
        db.session.query(
            Product.id,
            Product.sku,
            Product.current_stock,
            func.coalesce(ledger_sums.c.ledger_stock, 0),
        )
        .outerjoin(ledger_sums, ledger_sums.c.product_id == Product.id)
        .filter(Product.current_stock != func.coalesce(ledger_sums.c.ledger_stock, 0))
        .order_by(Product.id.asc())
        .all()
    )

    return [
        {
            "product_id": product_id,
            "sku": sku,
            "current_stock": current_stock,
            "ledger_stock": int(ledger_stock),
        }
        for product_id, sku, current_stock, ledger_stock in rows
    ]
