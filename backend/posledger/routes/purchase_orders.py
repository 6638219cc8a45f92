# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

"""
Purchase Order API Routes

SECURITY: ADMIN, MANAGER, INVENTORY_MANAGER.

LIFECYCLE:
- POST /api/purchase-orders/              create (PENDING)
- POST /api/purchase-orders/<id>/receive  record received quantities
- POST /api/purchase-orders/<id>/cancel   cancel a non-terminal order
- GET  /api/purchase-orders/              list (status, supplier_id filters)
- GET  /api/purchase-orders/<id>          read
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import BadRequestError, InternalServiceError, ServiceError
from ..models.auth import ROLE_ADMIN, ROLE_INVENTORY_MANAGER, ROLE_MANAGER
from ..services import purchase_order_service
from ..services.unit_of_work import run_with_configured_retry
from ..validation import coerce_int, coerce_optional_int

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")

PURCHASING_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY_MANAGER)


@purchase_orders_bp.post("/")
@require_auth
@require_role(*PURCHASING_ROLES)
def create_purchase_order_route():
    """
    Request body:
    {
        "supplier_id": 1,
        "items": [{"product_id": 1, "quantity_ordered": 10, "unit_cost_cents": 450}, ...],
        "notes": "...",                        (optional)
        "expected_at": "2026-01-15T00:00:00Z"  (optional)
    }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        if data.get("supplier_id") is None:
            raise BadRequestError("supplier_id is required")
        supplier_id = coerce_int(data["supplier_id"], "supplier_id")

        po = run_with_configured_retry(
            lambda: purchase_order_service.create_purchase_order(
                supplier_id=supplier_id,
                items=data.get("items"),
                user_id=g.current_user.id,
                notes=data.get("notes"),
                expected_at=data.get("expected_at"),
            )
        )
        return jsonify({"purchase_order": po.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify(InternalServiceError().to_dict()), 500


@purchase_orders_bp.get("/")
@require_auth
@require_role(*PURCHASING_ROLES)
def list_purchase_orders_route():
    try:
        orders = purchase_order_service.list_purchase_orders(
            status=request.args.get("status") or None,
            supplier_id=coerce_optional_int(request.args.get("supplier_id"), "supplier_id"),
        )
        return jsonify({"items": [po.to_dict() for po in orders], "count": len(orders)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@purchase_orders_bp.get("/<int:purchase_order_id>")
@require_auth
@require_role(*PURCHASING_ROLES)
def get_purchase_order_route(purchase_order_id: int):
    try:
        po = purchase_order_service.get_purchase_order(purchase_order_id)
        return jsonify({"purchase_order": po.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@purchase_orders_bp.post("/<int:purchase_order_id>/receive")
@require_auth
@require_role(*PURCHASING_ROLES)
def receive_purchase_order_route(purchase_order_id: int):
    """
    Request body:
    {
        "items": [
            {"purchase_order_item_id": 7, "quantity_received": 4},
            {"product_id": 2, "quantity_received": 1}
        ],
        "status": "PARTIALLY_RECEIVED" | "FULLY_RECEIVED"   (optional)
    }

    Returns:
        200: Receipt recorded
        400: Over-receipt, negative quantity, unreachable target status
        404: Order or item not found
        409: Order already FULLY_RECEIVED or CANCELLED
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        po = run_with_configured_retry(
            lambda: purchase_order_service.receive_purchase_order(
                purchase_order_id=purchase_order_id,
                received_items=data.get("items"),
                user_id=g.current_user.id,
                target_status=data.get("status"),
            )
        )
        return jsonify({"purchase_order": po.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return jsonify(InternalServiceError().to_dict()), 500


@purchase_orders_bp.post("/<int:purchase_order_id>/cancel")
@require_auth
@require_role(*PURCHASING_ROLES)
def cancel_purchase_order_route(purchase_order_id: int):
    data = request.get_json(silent=True) or {}

    try:
        po = run_with_configured_retry(
            lambda: purchase_order_service.cancel_purchase_order(
                purchase_order_id=purchase_order_id,
                user_id=g.current_user.id,
                reason=data.get("reason"),
            )
        )
        return jsonify({"purchase_order": po.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel purchase order")
        return jsonify(InternalServiceError().to_dict()), 500
