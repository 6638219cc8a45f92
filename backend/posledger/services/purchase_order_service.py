# Overview: Purchase-order lifecycle; creation, partial/full receiving and cancellation.

"""
Purchase Order Service

LIFECYCLE:
1. PENDING: Created, nothing received yet
2. PARTIALLY_RECEIVED: Some quantity received, not all items complete
3. FULLY_RECEIVED: Every item received in full (terminal)
4. CANCELLED: Cancelled before completion (terminal); stock already received stays

RECEIVING:
- Each receipt entry names an item by purchase_order_item_id (preferred) or product_id.
- quantity_received only grows and never exceeds quantity_ordered.
- Every positive receipt books one PURCHASE_ENTRY movement in the same unit of work.
- Status is derived from ALL items after the receipt; a requested status is only
  a validation target. Asking for FULLY_RECEIVED when items remain outstanding
  rejects the whole receipt.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import BadRequestError, ConflictError, NotFoundError
from ..extensions import db
from ..models import MovementType, Product, PurchaseOrder, PurchaseOrderItem, Supplier
from ..models.purchasing import (
    PO_STATUS_CANCELLED,
    PO_STATUS_FULLY_RECEIVED,
    PO_STATUS_PARTIALLY_RECEIVED,
    PO_STATUS_PENDING,
)
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import coerce_int, coerce_optional_int
from .ledger_service import Correlation
from .stock_service import adjust_stock
from .unit_of_work import UnitOfWork, transaction

logger = logging.getLogger(__name__)

RECEIVE_TARGET_STATUSES = {PO_STATUS_PARTIALLY_RECEIVED, PO_STATUS_FULLY_RECEIVED}


def _parse_expected_at(value):
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise BadRequestError("expected_at must be an ISO-8601 datetime")
    return value


def create_purchase_order(
    *,
    supplier_id: int,
    items,
    user_id: int,
    notes: Optional[str] = None,
    expected_at=None,
    uow: UnitOfWork | None = None,
) -> PurchaseOrder:
    """
    Create a PENDING purchase order.

    items: [{"product_id": int, "quantity_ordered": int, "unit_cost_cents": int}, ...]
    """
    if not isinstance(items, list) or not items:
        raise BadRequestError("A purchase order requires at least one item")
    expected_at = _parse_expected_at(expected_at)

    with transaction(uow) as scope:
        if scope.get(Supplier, supplier_id) is None:
            raise NotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})

        seen_products: set[int] = set()
        order_items = []
        for idx, raw in enumerate(items):
            if not isinstance(raw, dict):
                raise BadRequestError(f"items[{idx}] must be an object")
            if raw.get("product_id") is None:
                raise BadRequestError(f"items[{idx}].product_id is required")
            product_id = coerce_int(raw["product_id"], f"items[{idx}].product_id")
            quantity = coerce_int(raw.get("quantity_ordered"), f"items[{idx}].quantity_ordered")
            unit_cost = coerce_int(raw.get("unit_cost_cents", 0), f"items[{idx}].unit_cost_cents")

            if quantity <= 0:
                raise BadRequestError(f"items[{idx}].quantity_ordered must be > 0")
            if unit_cost < 0:
                raise BadRequestError(f"items[{idx}].unit_cost_cents must be >= 0")
            if product_id in seen_products:
                raise BadRequestError(
                    f"Product {product_id} appears more than once in the order",
                    details={"product_id": product_id},
                )
            seen_products.add(product_id)

            if scope.get(Product, product_id) is None:
                raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})

            order_items.append(
                PurchaseOrderItem(
                    product_id=product_id,
                    quantity_ordered=quantity,
                    quantity_received=0,
                    unit_cost_cents=unit_cost,
                )
            )

        po = PurchaseOrder(
            supplier_id=supplier_id,
            status=PO_STATUS_PENDING,
            total_cents=sum(i.quantity_ordered * i.unit_cost_cents for i in order_items),
            notes=notes,
            expected_at=expected_at,
            created_by_user_id=user_id,
            items=order_items,
        )
        scope.add(po)
        scope.flush()

    logger.info("Purchase order %s created for supplier %s (%s item(s))", po.id, supplier_id, len(order_items))
    return po


def _resolve_item(po: PurchaseOrder, entry: dict, idx: int) -> PurchaseOrderItem:
    item_id = coerce_optional_int(entry.get("purchase_order_item_id"), f"received_items[{idx}].purchase_order_item_id")
    product_id = coerce_optional_int(entry.get("product_id"), f"received_items[{idx}].product_id")

    if item_id is not None:
        match = next((i for i in po.items if i.id == item_id), None)
        if match is None:
            raise NotFoundError(
                f"Item {item_id} not found in purchase order {po.id}",
                details={"purchase_order_id": po.id, "purchase_order_item_id": item_id},
            )
        return match

    if product_id is not None:
        match = next((i for i in po.items if i.product_id == product_id), None)
        if match is None:
            raise NotFoundError(
                f"Product {product_id} is not part of purchase order {po.id}",
                details={"purchase_order_id": po.id, "product_id": product_id},
            )
        return match

    raise BadRequestError(f"received_items[{idx}] requires purchase_order_item_id or product_id")


def receive_purchase_order(
    *,
    purchase_order_id: int,
    received_items,
    user_id: int,
    target_status: Optional[str] = None,
    uow: UnitOfWork | None = None,
) -> PurchaseOrder:
    """
    Record received quantities and book them into stock.

    received_items: [{"purchase_order_item_id" | "product_id": int, "quantity_received": int}, ...]
    quantity_received is the quantity received NOW, added to what was already received.

    Raises:
        NotFoundError: order or item does not exist
        ConflictError: order is FULLY_RECEIVED or CANCELLED
        BadRequestError: invalid target status, empty/negative receipt,
            over-receipt, or FULLY_RECEIVED requested while items remain outstanding
    """
    with transaction(uow) as scope:
        po = scope.get(PurchaseOrder, purchase_order_id, lock=True)
        if po is None:
            raise NotFoundError(
                f"Purchase order {purchase_order_id} not found",
                details={"purchase_order_id": purchase_order_id},
            )
        if po.is_terminal:
            raise ConflictError(
                f"Purchase order {po.id} is {po.status} and cannot receive stock",
                details={"purchase_order_id": po.id, "status": po.status},
            )
        if target_status is not None and target_status not in RECEIVE_TARGET_STATUSES:
            raise BadRequestError(
                f"Invalid target status: {target_status}",
                details={"allowed": sorted(RECEIVE_TARGET_STATUSES)},
            )
        if not isinstance(received_items, list) or not received_items:
            raise BadRequestError("At least one received item is required")

        correlation = Correlation(purchase_order_id=po.id)
        received_any = False

        for idx, entry in enumerate(received_items):
            if not isinstance(entry, dict):
                raise BadRequestError(f"received_items[{idx}] must be an object")
            item = _resolve_item(po, entry, idx)
            now = coerce_int(entry.get("quantity_received"), f"received_items[{idx}].quantity_received")

            if now < 0:
                raise BadRequestError(
                    f"received_items[{idx}].quantity_received must be >= 0",
                    details={"purchase_order_item_id": item.id, "quantity_received": now},
                )
            already = item.quantity_received or 0
            if already + now > item.quantity_ordered:
                raise BadRequestError(
                    f"Over-receipt for item {item.id} (product {item.product_id}): "
                    f"ordered {item.quantity_ordered}, already received {already}, attempted {now}",
                    details={
                        "purchase_order_item_id": item.id,
                        "product_id": item.product_id,
                        "quantity_ordered": item.quantity_ordered,
                        "quantity_already_received": already,
                        "quantity_attempted": now,
                    },
                )
            if now == 0:
                continue

            item.quantity_received = already + now
            received_any = True
            adjust_stock(
                scope,
                product_id=item.product_id,
                quantity_delta=now,
                movement_type=MovementType.PURCHASE_ENTRY,
                user_id=user_id,
                reason=f"Receipt for purchase order {po.id}",
                correlation=correlation,
            )

        all_complete = all(i.is_complete for i in po.items)
        if target_status == PO_STATUS_FULLY_RECEIVED and not all_complete:
            incomplete = [
                {
                    "purchase_order_item_id": i.id,
                    "product_id": i.product_id,
                    "quantity_ordered": i.quantity_ordered,
                    "quantity_received": i.quantity_received,
                }
                for i in po.items
                if not i.is_complete
            ]
            raise BadRequestError(
                f"Purchase order {po.id} cannot be marked FULLY_RECEIVED; items remain outstanding",
                details={"incomplete_items": incomplete},
            )

        if all_complete:
            po.status = PO_STATUS_FULLY_RECEIVED
            po.received_at = utcnow()
        elif received_any:
            po.status = PO_STATUS_PARTIALLY_RECEIVED
        scope.flush()

    logger.info("Purchase order %s received by user %s; status %s", purchase_order_id, user_id, po.status)
    return po


def cancel_purchase_order(
    *,
    purchase_order_id: int,
    user_id: int,
    reason: Optional[str] = None,
    uow: UnitOfWork | None = None,
) -> PurchaseOrder:
    """Cancel a non-terminal order. Quantities already received stay in stock."""
    with transaction(uow) as scope:
        po = scope.get(PurchaseOrder, purchase_order_id, lock=True)
        if po is None:
            raise NotFoundError(
                f"Purchase order {purchase_order_id} not found",
                details={"purchase_order_id": purchase_order_id},
            )
        if po.is_terminal:
            raise ConflictError(
                f"Purchase order {po.id} is {po.status} and cannot be cancelled",
                details={"purchase_order_id": po.id, "status": po.status},
            )
        po.status = PO_STATUS_CANCELLED
        po.cancelled_at = utcnow()
        po.cancel_reason = (reason or "").strip() or None
        scope.flush()

    logger.info("Purchase order %s cancelled by user %s", purchase_order_id, user_id)
    return po


def get_purchase_order(purchase_order_id: int) -> PurchaseOrder:
    po = db.session.get(PurchaseOrder, purchase_order_id)
    if po is None:
        raise NotFoundError(
            f"Purchase order {purchase_order_id} not found",
            details={"purchase_order_id": purchase_order_id},
        )
    return po


PO_STATUSES = frozenset({
    PO_STATUS_PENDING,
    PO_STATUS_PARTIALLY_RECEIVED,
    PO_STATUS_FULLY_RECEIVED,
    PO_STATUS_CANCELLED,
})


def list_purchase_orders(
    *,
    status: Optional[str] = None,
    supplier_id: Optional[int] = None,
    limit: int = 100,
) -> list[PurchaseOrder]:
    """Purchase orders newest first, optionally filtered by status and supplier."""
    query = db.session.query(PurchaseOrder)
    if status is not None:
        status = str(status).strip().upper()
        if status not in PO_STATUSES:
            raise BadRequestError(
                f"Unknown purchase order status: {status}",
                details={"allowed": sorted(PO_STATUSES)},
            )
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).limit(limit).all()
