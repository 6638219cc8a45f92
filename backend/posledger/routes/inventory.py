# backend/posledger/routes/inventory.py
"""
Inventory routes: manual adjustments and the movement ledger.

SECURITY: ADMIN, MANAGER, INVENTORY_MANAGER only.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- start/end filtering is inclusive.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import BadRequestError, InternalServiceError, ServiceError
from ..models import MovementType
from ..models.auth import ROLE_ADMIN, ROLE_INVENTORY_MANAGER, ROLE_MANAGER
from ..services import ledger_service, stock_service
from ..services.unit_of_work import run_with_configured_retry
from ..time_utils import parse_time_range
from ..validation import coerce_int, coerce_optional_int

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

INVENTORY_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY_MANAGER)

MAX_MOVEMENTS_LIMIT = 1000


@inventory_bp.post("/adjust")
@require_auth
@require_role(*INVENTORY_ROLES)
def adjust_inventory_route():
    """
    Manual stock correction.

    Request body:
    {
        "product_id": 1,
        "type": "ADJUSTMENT_IN" | "ADJUSTMENT_OUT",
        "quantity": 3,          (positive; the sign comes from the type)
        "reason": "Damaged in storage"
    }
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        if payload.get("product_id") is None:
            raise BadRequestError("product_id is required")
        product_id = coerce_int(payload["product_id"], "product_id")
        quantity = coerce_int(payload.get("quantity"), "quantity")
        movement_type = payload.get("type") or payload.get("movement_type")

        product = run_with_configured_retry(
            lambda: stock_service.adjust_inventory(
                product_id=product_id,
                movement_type=movement_type,
                quantity=quantity,
                reason=payload.get("reason"),
                user_id=g.current_user.id,
            )
        )
        return jsonify({"product": product.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify(InternalServiceError().to_dict()), 500


@inventory_bp.get("/movements")
@require_auth
@require_role(*INVENTORY_ROLES)
def list_movements_route():
    """
    Query the movement ledger, newest first.

    Query params: product_id, user_id, sale_id, type, start, end, limit
    """
    try:
        movement_type = request.args.get("type")
        if movement_type:
            try:
                movement_type = MovementType(movement_type)
            except ValueError:
                raise BadRequestError(f"Unknown movement type: {movement_type}")
        else:
            movement_type = None

        try:
            start, end = parse_time_range(request.args.get("start"), request.args.get("end"))
        except ValueError:
            raise BadRequestError("start/end must be ISO-8601 datetimes with start <= end")

        limit = coerce_optional_int(request.args.get("limit"), "limit") or 200
        limit = max(1, min(limit, MAX_MOVEMENTS_LIMIT))

        movements = ledger_service.list_movements(
            product_id=coerce_optional_int(request.args.get("product_id"), "product_id"),
            user_id=coerce_optional_int(request.args.get("user_id"), "user_id"),
            sale_id=coerce_optional_int(request.args.get("sale_id"), "sale_id"),
            movement_type=movement_type,
            start=start,
            end=end,
            limit=limit,
        )
        return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
