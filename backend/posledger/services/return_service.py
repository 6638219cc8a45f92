"""
Return Processing Service

WHY: A return puts goods back on the shelf and money back in the customer's
hand, so both must be bounded by what the original sale actually contained.

DESIGN PRINCIPLES:
- Returns reference the original Sale for traceability
- Returned quantity per product is bounded CUMULATIVELY: all prior returns for
  the sale plus earlier entries of the same request plus this entry must not
  exceed the quantity sold
- Stock restored via one CUSTOMER_RETURN movement per item, correlated with
  both the return and the original sale
- Refunds default to the snapshot unit price and never exceed, together with
  prior refunds, the sale total
- The original sale keeps its status
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Optional

from sqlalchemy import func

from ..errors import BadRequestError, ConflictError, NotFoundError
from ..extensions import db
from ..models import MovementType, Product, Return, ReturnItem, Sale
from ..models.sales import SALE_STATUS_CANCELLED
from ..validation import coerce_int
from .ledger_service import Correlation
from .stock_service import adjust_stock
from .unit_of_work import UnitOfWork, transaction

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def _parse_items(items) -> list[tuple[int, int]]:
    if not isinstance(items, list) or not items:
        raise BadRequestError("A return requires at least one item")

    parsed = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise BadRequestError(f"items[{idx}] must be an object")
        if raw.get("product_id") is None:
            raise BadRequestError(f"items[{idx}].product_id is required")
        product_id = coerce_int(raw["product_id"], f"items[{idx}].product_id")
        quantity = coerce_int(raw.get("quantity"), f"items[{idx}].quantity")
        if quantity <= 0:
            raise BadRequestError(
                f"items[{idx}].quantity must be a positive integer",
                details={"product_id": product_id, "quantity": quantity},
            )
        parsed.append((product_id, quantity))
    return parsed


def _returned_quantities(sale_id: int) -> dict[int, int]:
    """Quantity already returned per product across all prior returns of a sale."""
    rows = (
        db.session.query(ReturnItem.product_id, func.sum(ReturnItem.quantity))
        .join(Return, Return.id == ReturnItem.return_id)
        .filter(Return.original_sale_id == sale_id)
        .group_by(ReturnItem.product_id)
        .all()
    )
    return {product_id: int(total or 0) for product_id, total in rows}


def _refunded_so_far(sale_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Return.refunded_amount_cents), 0))
        .filter(Return.original_sale_id == sale_id)
        .scalar()
    )
    return int(total or 0)


def _snapshot_unit_price(sale: Sale, product_id: int) -> int:
    # First matching line; a product sold on several lines is refunded at its first price.
    for line in sale.lines:
        if line.product_id == product_id:
            return line.unit_price_cents
    return 0


# =============================================================================
# RETURN CREATION
# =============================================================================

def create_return(
    *,
    original_sale_id: int,
    user_id: int,
    items,
    reason: Optional[str] = None,
    refunded_amount_cents=None,
    uow: UnitOfWork | None = None,
) -> Return:
    """
    Process a customer return against a completed sale.

    Args:
        original_sale_id: Sale being returned from
        user_id: User processing the return
        items: [{"product_id": int, "quantity": int}, ...]
        reason: Customer's reason for return
        refunded_amount_cents: Explicit refund; defaults to snapshot price x quantity

    Raises:
        BadRequestError: empty items, bad quantities, product not on the sale,
            cumulative over-return, refund out of bounds
        NotFoundError: sale or product does not exist
        ConflictError: sale is cancelled
    """
    requested = _parse_items(items)
    explicit_refund = None
    if refunded_amount_cents is not None:
        explicit_refund = coerce_int(refunded_amount_cents, "refunded_amount_cents")
        if explicit_refund < 0:
            raise BadRequestError("refunded_amount_cents must be >= 0")

    with transaction(uow) as scope:
        sale = scope.get(Sale, original_sale_id, lock=True)
        if sale is None:
            raise NotFoundError(f"Sale {original_sale_id} not found", details={"sale_id": original_sale_id})
        if sale.status == SALE_STATUS_CANCELLED:
            raise ConflictError(
                f"Sale {sale.id} is cancelled and cannot be returned",
                details={"sale_id": sale.id, "status": sale.status},
            )

        already_returned = _returned_quantities(sale.id)
        in_this_request: dict[int, int] = defaultdict(int)
        default_refund = 0

        for product_id, quantity in requested:
            if scope.get(Product, product_id) is None:
                raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})

            sold = sale.quantity_sold(product_id)
            if sold == 0:
                raise BadRequestError(
                    f"Product {product_id} was not part of sale {sale.id}",
                    details={"sale_id": sale.id, "product_id": product_id},
                )

            prior = already_returned.get(product_id, 0)
            if prior + in_this_request[product_id] + quantity > sold:
                raise BadRequestError(
                    f"Return quantity for product {product_id} exceeds quantity sold "
                    f"(sold {sold}, already returned {prior + in_this_request[product_id]}, requested {quantity})",
                    details={
                        "sale_id": sale.id,
                        "product_id": product_id,
                        "quantity_sold": sold,
                        "quantity_already_returned": prior + in_this_request[product_id],
                        "quantity_requested": quantity,
                    },
                )
            in_this_request[product_id] += quantity
            default_refund += _snapshot_unit_price(sale, product_id) * quantity

        remaining_refundable = max(0, sale.total_cents - _refunded_so_far(sale.id))
        if explicit_refund is None:
            refund = min(default_refund, remaining_refundable)
        else:
            if explicit_refund > remaining_refundable:
                raise BadRequestError(
                    f"Refund of {explicit_refund} cents exceeds the remaining refundable "
                    f"amount of {remaining_refundable} cents",
                    details={
                        "sale_id": sale.id,
                        "refunded_amount_cents": explicit_refund,
                        "remaining_refundable_cents": remaining_refundable,
                    },
                )
            refund = explicit_refund

        ret = Return(
            original_sale_id=sale.id,
            processed_by_user_id=user_id,
            reason=(reason or "").strip() or None,
            refunded_amount_cents=refund,
            items=[ReturnItem(product_id=pid, quantity=qty) for pid, qty in requested],
        )
        scope.add(ret)
        scope.flush()

        correlation = Correlation(sale_id=sale.id, return_id=ret.id)
        for product_id, quantity in requested:
            adjust_stock(
                scope,
                product_id=product_id,
                quantity_delta=quantity,
                movement_type=MovementType.CUSTOMER_RETURN,
                user_id=user_id,
                reason=f"Return {ret.id} for sale {sale.id}",
                correlation=correlation,
            )

    logger.info(
        "Return %s processed for sale %s by user %s: %s item(s), refund %s cents",
        ret.id,
        original_sale_id,
        user_id,
        len(requested),
        refund,
    )
    return ret


def get_return(return_id: int) -> Return:
    ret = db.session.get(Return, return_id)
    if ret is None:
        raise NotFoundError(f"Return {return_id} not found", details={"return_id": return_id})
    return ret


def list_returns_for_sale(sale_id: int) -> list[Return]:
    if db.session.get(Sale, sale_id) is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return (
        db.session.query(Return)
        .filter(Return.original_sale_id == sale_id)
        .order_by(Return.created_at.asc(), Return.id.asc())
        .all()
    )


def list_returns(
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
) -> list[Return]:
    """All returns newest first; start/end are inclusive."""
    query = db.session.query(Return)
    if start is not None:
        query = query.filter(Return.created_at >= start)
    if end is not None:
        query = query.filter(Return.created_at <= end)
    return query.order_by(Return.created_at.desc(), Return.id.desc()).limit(limit).all()
