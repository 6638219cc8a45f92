# Overview: Flask API routes for products; parses input and returns JSON responses.

# backend/posledger/routes/products.py
"""
Product master data routes.

SECURITY: All routes require authentication.
- Create/update: ADMIN, MANAGER, INVENTORY_MANAGER
- Read: any authenticated user

current_stock is read-only here. Opening stock is passed as "opening_stock"
on create and booked as an inventory movement.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import InternalServiceError, ServiceError
from ..models.auth import ROLE_ADMIN, ROLE_INVENTORY_MANAGER, ROLE_MANAGER
from ..services import products_service
from ..services.unit_of_work import run_with_configured_retry

products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRODUCT_WRITE_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY_MANAGER)


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes"}


@products_bp.get("/")
@require_auth
def list_products_route():
    """
    List products.

    Query params:
        low_stock=1         only products at or below their minimum stock
        include_inactive=0  hide inactive products
    """
    low_stock_only = _truthy(request.args.get("low_stock"))
    include_inactive = request.args.get("include_inactive", "1") != "0"

    products = products_service.list_products(
        low_stock_only=low_stock_only,
        include_inactive=include_inactive,
    )
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("/")
@require_auth
@require_role(*PRODUCT_WRITE_ROLES)
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "sku": "SKU-001",
        "name": "Widget",
        "selling_price_cents": 1299,
        "cost_price_cents": 700,     (optional)
        "minimum_stock": 5,          (optional)
        "opening_stock": 20          (optional, booked as ADJUSTMENT_IN)
    }
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        product = run_with_configured_retry(
            lambda: products_service.create_product(
                payload=payload,
                user_id=g.current_user.id,
                opening_stock=payload.get("opening_stock", 0),
            )
        )
        return jsonify({"product": product.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify(InternalServiceError().to_dict()), 500


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(*PRODUCT_WRITE_ROLES)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        product = run_with_configured_retry(
            lambda: products_service.update_product(product_id=product_id, payload=payload)
        )
        return jsonify({"product": product.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify(InternalServiceError().to_dict()), 500
