# Overview: Product master data; opening stock is recorded through the stock mutator.
"""
Products Service

current_stock is never writable through this module. A new product starts at
zero and any opening quantity is booked as an ADJUSTMENT_IN movement, so the
ledger explains every unit on hand from the first day.
"""
from __future__ import annotations

import logging

from ..errors import BadRequestError, ConflictError, NotFoundError
from ..extensions import db
from ..models import MovementType, Product
from ..validation import PRODUCT_POLICY, coerce_int, enforce_rules_product, validate_payload
from .stock_service import adjust_stock
from .unit_of_work import UnitOfWork, transaction

logger = logging.getLogger(__name__)

STOCK_FIELDS = {"current_stock", "version_id"}


def _ensure_sku_available(sku: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"SKU {sku!r} already exists", details={"sku": sku})


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def list_products(*, low_stock_only: bool = False, include_inactive: bool = True) -> list[Product]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if low_stock_only:
        query = query.filter(Product.current_stock <= Product.minimum_stock)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(
    *,
    payload: dict,
    user_id: int,
    opening_stock=0,
    uow: UnitOfWork | None = None,
) -> Product:
    """
    Create a product from a client payload.

    Raises:
        ValidationError: invalid payload or negative opening stock
        ConflictError: SKU already exists
    """
    payload = dict(payload or {})
    payload.pop("opening_stock", None)
    if STOCK_FIELDS & payload.keys():
        raise BadRequestError("current_stock cannot be set directly; use opening_stock")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    opening_stock = coerce_int(opening_stock, "opening_stock")
    if opening_stock < 0:
        raise BadRequestError("opening_stock must be >= 0")

    with transaction(uow) as scope:
        _ensure_sku_available(patch["sku"])

        product = Product(current_stock=0, **patch)
        scope.add(product)
        scope.flush()

        if opening_stock > 0:
            adjust_stock(
                scope,
                product_id=product.id,
                quantity_delta=opening_stock,
                movement_type=MovementType.ADJUSTMENT_IN,
                user_id=user_id,
                reason="Opening stock",
            )

    logger.info("Created product %s (%s) with opening stock %s", product.id, product.sku, opening_stock)
    return product


def update_product(*, product_id: int, payload: dict, uow: UnitOfWork | None = None) -> Product:
    """
    Patch product master data. Stock levels are refused here.
    """
    payload = payload or {}
    if isinstance(payload, dict) and STOCK_FIELDS & payload.keys():
        raise BadRequestError(
            "current_stock can only change through inventory movements",
            details={"fields": sorted(STOCK_FIELDS & payload.keys())},
        )

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    with transaction(uow) as scope:
        product = scope.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})

        if "sku" in patch and patch["sku"] != product.sku:
            _ensure_sku_available(patch["sku"], exclude_id=product.id)

        for key, value in patch.items():
            setattr(product, key, value)
        scope.flush()

    logger.info("Updated product %s fields=%s", product_id, sorted(patch.keys()))
    return product
