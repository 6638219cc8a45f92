# Overview: The stock mutator; the only code path that changes current_stock.

from __future__ import annotations

import logging
from typing import Optional

from ..errors import BadRequestError, InsufficientStockError, NotFoundError
from ..models import MOVEMENT_POLICIES, MovementType, Product, User
from ..models.inventory import MANUAL_ADJUSTMENT_TYPES
from .ledger_service import Correlation, append_movement
from .signals import low_stock_reached
from .unit_of_work import UnitOfWork, transaction
"""
Stock Mutation Invariants (authoritative)

- adjust_stock is the single choke point for current_stock. Every call appends
  exactly one ledger movement in the same unit of work, so SUM(ledger) stays
  equal to current_stock.
- The product row is read with a row lock; the read sees pending writes of the
  same unit of work (two lines of one product in a sale see each other).
- Outgoing, stock-constrained kinds (SALE_EXIT, ADJUSTMENT_OUT) never drive
  stock below zero. Incoming kinds are never floor-checked.
- On failure nothing is applied; the caller's unit of work decides rollback.
- The low-stock signal fires only on the crossing edge and only after commit.
"""

logger = logging.getLogger(__name__)


def _coerce_movement_type(value) -> MovementType:
    if isinstance(value, MovementType):
        return value
    try:
        return MovementType(value)
    except ValueError:
        raise BadRequestError(f"Unknown movement type: {value!r}")


def adjust_stock(
    uow: UnitOfWork,
    *,
    product_id: int,
    quantity_delta: int,
    movement_type: MovementType,
    user_id: int,
    reason: Optional[str] = None,
    correlation: Optional[Correlation] = None,
) -> Product:
    """
    Apply a signed stock delta to one product and record it in the ledger.

    Raises:
        NotFoundError: product does not exist
        BadRequestError: missing actor, zero delta, or a delta whose sign
            contradicts the movement type
        InsufficientStockError: an outgoing movement would go below zero
    """
    movement_type = _coerce_movement_type(movement_type)
    policy = MOVEMENT_POLICIES[movement_type]

    product = uow.get(Product, product_id, lock=True)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})

    if user_id is None:
        raise BadRequestError("A stock movement requires an acting user")
    if uow.get(User, user_id) is None:
        raise BadRequestError(f"Unknown acting user {user_id}", details={"user_id": user_id})

    if not isinstance(quantity_delta, int) or isinstance(quantity_delta, bool):
        raise BadRequestError("quantity_delta must be an integer")
    if quantity_delta == 0:
        raise BadRequestError("quantity_delta must be non-zero")
    if (quantity_delta > 0) != (policy.direction > 0):
        raise BadRequestError(
            f"{movement_type.value} requires a {'positive' if policy.direction > 0 else 'negative'} quantity",
            details={"movement_type": movement_type.value, "quantity_delta": quantity_delta},
        )

    previous = product.current_stock
    new_stock = previous + quantity_delta

    if new_stock < 0 and policy.enforces_floor:
        logger.error(
            "Insufficient stock for product %s (%s): required=%s available=%s",
            product.id,
            product.name,
            -quantity_delta,
            previous,
        )
        raise InsufficientStockError(
            product_id=product.id,
            product_name=product.name,
            required=-quantity_delta,
            available=previous,
        )

    append_movement(
        uow,
        product_id=product.id,
        quantity=quantity_delta,
        movement_type=movement_type,
        user_id=user_id,
        stock_before=previous,
        stock_after=new_stock,
        reason=reason,
        correlation=correlation,
    )

    product.current_stock = new_stock
    uow.flush()

    logger.debug(
        "Stock %s for product %s: %s -> %s (%+d)",
        movement_type.value,
        product.id,
        previous,
        new_stock,
        quantity_delta,
    )

    minimum = product.minimum_stock
    if previous > minimum >= new_stock:
        _announce_low_stock(uow, product, previous, new_stock)

    return product


def _announce_low_stock(uow: UnitOfWork, product: Product, previous: int, current: int) -> None:
    logger.warning(
        "Product %s (%s) reached low stock: %s -> %s (minimum %s)",
        product.id,
        product.name,
        previous,
        current,
        product.minimum_stock,
    )

    # Values are captured now; the instance may be expired once the hook runs.
    product_id = product.id
    payload = {
        "product_name": product.name,
        "previous_stock": previous,
        "current_stock": current,
        "minimum_stock": product.minimum_stock,
    }
    uow.after_commit(lambda: low_stock_reached.send(product_id, **payload))


def adjust_inventory(
    *,
    product_id: int,
    movement_type,
    quantity: int,
    reason: str,
    user_id: int,
    uow: UnitOfWork | None = None,
) -> Product:
    """
    Manual stock adjustment (ADJUSTMENT_IN / ADJUSTMENT_OUT).

    quantity is the positive magnitude; the sign comes from the movement type.
    A reason is mandatory so every manual correction is explained in the ledger.
    """
    movement_type = _coerce_movement_type(movement_type)
    if movement_type not in MANUAL_ADJUSTMENT_TYPES:
        raise BadRequestError(
            "movement_type must be ADJUSTMENT_IN or ADJUSTMENT_OUT",
            details={"movement_type": movement_type.value},
        )
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise BadRequestError("quantity must be a positive integer")
    if reason is None or not str(reason).strip():
        raise BadRequestError("reason is required for manual adjustments")

    delta = quantity * MOVEMENT_POLICIES[movement_type].direction

    with transaction(uow) as scope:
        product = adjust_stock(
            scope,
            product_id=product_id,
            quantity_delta=delta,
            movement_type=movement_type,
            user_id=user_id,
            reason=str(reason).strip(),
        )

    logger.info(
        "Manual %s of %s on product %s by user %s",
        movement_type.value,
        quantity,
        product_id,
        user_id,
    )
    return product
