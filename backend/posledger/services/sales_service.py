# Overview: Sale transaction orchestrator; sale creation, totals and cancellation.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from ..errors import BadRequestError, ConflictError, InsufficientStockError, NotFoundError
from ..extensions import db
from ..models import Customer, MovementType, Product, Sale, SaleLine
from ..models.sales import SALE_STATUS_CANCELLED, SALE_STATUS_COMPLETED
from ..time_utils import utcnow
from ..validation import coerce_decimal, coerce_int
from .ledger_service import Correlation
from .stock_service import adjust_stock
from .unit_of_work import UnitOfWork, transaction
"""
Sale Invariants (authoritative)

- A sale, its lines and one SALE_EXIT movement per line commit together or not at all.
- unit_price_cents is a snapshot of the product's selling price at sale time.
- Totals (integer cents, half-up at each rounding step):
    subtotal   = SUM(unit_price * quantity)
    discounted = max(0, subtotal - round(subtotal * percent / 100) - discount_amount)
    tax        = round(discounted * tax_rate_bps / 10000)
    total      = discounted + tax
- The per-line stock pre-check is advisory; the stock mutator is authoritative.
  Two lines of one product that each pass the pre-check but jointly exceed
  stock fail in the mutator and roll the whole sale back.
- Cancellation never edits the ledger: each line is restored by a
  compensating ADJUSTMENT_IN correlated with the sale.
"""

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
BPS_DENOMINATOR = Decimal("10000")

# Generated receipts are "R-" + zero-padded sale id; clients may not use the prefix.
GENERATED_RECEIPT_PREFIX = "R-"


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class SaleTotals:
    subtotal_cents: int
    percent_discount_cents: int
    discount_total_cents: int
    discounted_cents: int
    tax_cents: int
    total_cents: int


@dataclass(frozen=True)
class SaleLineRequest:
    product_id: int
    quantity: int


def compute_sale_totals(
    *,
    subtotal_cents: int,
    discount_percent: Decimal = Decimal("0"),
    discount_amount_cents: int = 0,
    tax_rate_bps: int = 0,
) -> SaleTotals:
    """Percent discount first, then the fixed amount, clamp at zero, then tax."""
    percent_discount = round_half_up(Decimal(subtotal_cents) * Decimal(discount_percent) / HUNDRED)
    discounted = max(0, subtotal_cents - percent_discount - discount_amount_cents)
    tax = round_half_up(Decimal(discounted) * Decimal(tax_rate_bps) / BPS_DENOMINATOR)
    return SaleTotals(
        subtotal_cents=subtotal_cents,
        percent_discount_cents=percent_discount,
        discount_total_cents=subtotal_cents - discounted,
        discounted_cents=discounted,
        tax_cents=tax,
        total_cents=discounted + tax,
    )


def _parse_lines(lines) -> list[SaleLineRequest]:
    if not isinstance(lines, list) or not lines:
        raise BadRequestError("A sale requires at least one line")

    parsed = []
    for idx, raw in enumerate(lines):
        if isinstance(raw, SaleLineRequest):
            line = raw
        elif isinstance(raw, dict):
            if raw.get("product_id") is None:
                raise BadRequestError(f"lines[{idx}].product_id is required")
            if raw.get("quantity") is None:
                raise BadRequestError(f"lines[{idx}].quantity is required")
            line = SaleLineRequest(
                product_id=coerce_int(raw["product_id"], f"lines[{idx}].product_id"),
                quantity=coerce_int(raw["quantity"], f"lines[{idx}].quantity"),
            )
        else:
            raise BadRequestError(f"lines[{idx}] must be an object")

        if line.quantity <= 0:
            raise BadRequestError(
                f"lines[{idx}].quantity must be a positive integer",
                details={"product_id": line.product_id, "quantity": line.quantity},
            )
        parsed.append(line)
    return parsed


def _validate_adjustments(discount_percent, discount_amount_cents, tax_rate_bps) -> tuple[Decimal, int, int]:
    percent = coerce_decimal(discount_percent if discount_percent is not None else 0, "discount_percent")
    if percent < 0 or percent > HUNDRED:
        raise BadRequestError("discount_percent must be between 0 and 100")
    if percent != percent.quantize(Decimal("0.01")):
        raise BadRequestError("discount_percent supports at most two decimal places")

    amount = coerce_int(discount_amount_cents if discount_amount_cents is not None else 0, "discount_amount_cents")
    if amount < 0:
        raise BadRequestError("discount_amount_cents must be >= 0")

    bps = coerce_int(tax_rate_bps if tax_rate_bps is not None else 0, "tax_rate_bps")
    if bps < 0:
        raise BadRequestError("tax_rate_bps must be >= 0")

    return percent.quantize(Decimal("0.01")), amount, bps


def create_sale(
    *,
    user_id: int,
    lines,
    payment_method: str,
    customer_id: Optional[int] = None,
    discount_percent=0,
    discount_amount_cents: int = 0,
    tax_rate_bps: int = 0,
    notes: Optional[str] = None,
    receipt_number: Optional[str] = None,
    uow: UnitOfWork | None = None,
) -> Sale:
    """
    Create a COMPLETED sale and decrement stock for every line atomically.

    Raises:
        BadRequestError: invalid lines, payment method, discount or tax, reserved receipt prefix
        NotFoundError: customer or product does not exist
        ConflictError: product inactive, receipt number taken
        InsufficientStockError: stock cannot cover a line
    """
    requested = _parse_lines(lines)
    if payment_method is None or not str(payment_method).strip():
        raise BadRequestError("payment_method is required")
    payment_method = str(payment_method).strip().upper()
    percent, amount, bps = _validate_adjustments(discount_percent, discount_amount_cents, tax_rate_bps)
    receipt_number = str(receipt_number).strip() if receipt_number else None
    if receipt_number and receipt_number.upper().startswith(GENERATED_RECEIPT_PREFIX):
        raise BadRequestError(
            f"Receipt numbers starting with {GENERATED_RECEIPT_PREFIX!r} are reserved",
            details={"receipt_number": receipt_number},
        )

    with transaction(uow) as scope:
        if customer_id is not None:
            if scope.get(Customer, customer_id) is None:
                raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})

        if receipt_number and db.session.query(Sale.id).filter_by(receipt_number=receipt_number).first():
            raise ConflictError(
                f"Receipt number {receipt_number!r} already exists",
                details={"receipt_number": receipt_number},
            )

        sale_lines = []
        for line in requested:
            product = scope.get(Product, line.product_id)
            if product is None:
                raise NotFoundError(
                    f"Product {line.product_id} not found",
                    details={"product_id": line.product_id},
                )
            if not product.is_active:
                raise ConflictError(
                    f"Product {product.name!r} is not active",
                    details={"product_id": product.id},
                )
            if product.current_stock < line.quantity:
                raise InsufficientStockError(
                    product_id=product.id,
                    product_name=product.name,
                    required=line.quantity,
                    available=product.current_stock,
                )

            line_subtotal = product.selling_price_cents * line.quantity
            sale_lines.append(
                SaleLine(
                    product_id=product.id,
                    quantity=line.quantity,
                    unit_price_cents=product.selling_price_cents,
                    line_subtotal_cents=line_subtotal,
                    line_total_cents=line_subtotal,
                )
            )

        totals = compute_sale_totals(
            subtotal_cents=sum(sl.line_subtotal_cents for sl in sale_lines),
            discount_percent=percent,
            discount_amount_cents=amount,
            tax_rate_bps=bps,
        )

        sale = Sale(
            user_id=user_id,
            customer_id=customer_id,
            status=SALE_STATUS_COMPLETED,
            payment_method=payment_method,
            receipt_number=receipt_number,
            notes=notes,
            subtotal_cents=totals.subtotal_cents,
            discount_percent=percent,
            discount_amount_cents=amount,
            discount_total_cents=totals.discount_total_cents,
            tax_rate_bps=bps,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            lines=sale_lines,
        )
        scope.add(sale)
        scope.flush()

        if sale.receipt_number is None:
            sale.receipt_number = f"{GENERATED_RECEIPT_PREFIX}{sale.id:08d}"

        correlation = Correlation(sale_id=sale.id)
        for sale_line in sale_lines:
            adjust_stock(
                scope,
                product_id=sale_line.product_id,
                quantity_delta=-sale_line.quantity,
                movement_type=MovementType.SALE_EXIT,
                user_id=user_id,
                reason=f"Sale {sale.receipt_number}",
                correlation=correlation,
            )

    logger.info(
        "Sale %s completed by user %s: %s line(s), total %s cents",
        sale.id,
        user_id,
        len(sale_lines),
        totals.total_cents,
    )
    return sale


def cancel_sale(
    *,
    sale_id: int,
    user_id: int,
    reason: Optional[str] = None,
    uow: UnitOfWork | None = None,
) -> Sale:
    """
    Cancel a COMPLETED sale that has no returns and restore its stock.

    Raises:
        NotFoundError: sale does not exist
        ConflictError: sale already cancelled or has returns
    """
    with transaction(uow) as scope:
        sale = scope.get(Sale, sale_id, lock=True)
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        if sale.status != SALE_STATUS_COMPLETED:
            raise ConflictError(
                f"Sale {sale_id} cannot be cancelled (status: {sale.status})",
                details={"sale_id": sale_id, "status": sale.status},
            )
        if sale.returns:
            raise ConflictError(
                f"Sale {sale_id} has returns and cannot be cancelled",
                details={"sale_id": sale_id, "return_ids": [r.id for r in sale.returns]},
            )

        correlation = Correlation(sale_id=sale.id)
        for line in sale.lines:
            adjust_stock(
                scope,
                product_id=line.product_id,
                quantity_delta=line.quantity,
                movement_type=MovementType.ADJUSTMENT_IN,
                user_id=user_id,
                reason=f"Cancellation of sale {sale.receipt_number or sale.id}",
                correlation=correlation,
            )

        sale.status = SALE_STATUS_CANCELLED
        sale.cancelled_at = utcnow()
        sale.cancelled_by_user_id = user_id
        sale.cancel_reason = (reason or "").strip() or None
        scope.flush()

    logger.info("Sale %s cancelled by user %s", sale_id, user_id)
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    *,
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
) -> list[Sale]:
    """Sales newest first; start/end are inclusive."""
    query = db.session.query(Sale)
    if status is not None:
        query = query.filter(Sale.status == status)
    if user_id is not None:
        query = query.filter(Sale.user_id == user_id)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
