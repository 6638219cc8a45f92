# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

"""
Return Processing API Routes

SECURITY: ADMIN, MANAGER, CASHIER. The authenticated user is recorded as the
processor of the return and the actor of every stock movement.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import BadRequestError, InternalServiceError, ServiceError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from ..services import return_service
from ..services.unit_of_work import run_with_configured_retry
from ..time_utils import parse_time_range
from ..validation import coerce_int

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")

RETURN_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)


@returns_bp.post("/")
@require_auth
@require_role(*RETURN_ROLES)
def create_return_route():
    """
    Process a return against a completed sale.

    Request body:
    {
        "original_sale_id": 123,
        "items": [{"product_id": 1, "quantity": 1}, ...],
        "reason": "Customer not satisfied with product",   (optional)
        "refunded_amount_cents": 1299                       (optional)
    }

    Returns:
        201: Return processed, stock restored
        400: Invalid input or quantity beyond what was sold
        404: Sale or product not found
        409: Sale is cancelled
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        if data.get("original_sale_id") is None:
            raise BadRequestError("original_sale_id is required")
        original_sale_id = coerce_int(data["original_sale_id"], "original_sale_id")

        return_doc = run_with_configured_retry(
            lambda: return_service.create_return(
                original_sale_id=original_sale_id,
                user_id=g.current_user.id,
                items=data.get("items"),
                reason=data.get("reason"),
                refunded_amount_cents=data.get("refunded_amount_cents"),
            )
        )
        return jsonify({"return": return_doc.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify(InternalServiceError().to_dict()), 500


@returns_bp.get("/")
@require_auth
@require_role(*RETURN_ROLES)
def list_returns_route():
    try:
        try:
            start, end = parse_time_range(request.args.get("start"), request.args.get("end"))
        except ValueError:
            raise BadRequestError("start/end must be ISO-8601 datetimes with start <= end")

        returns = return_service.list_returns(start=start, end=end)
        return jsonify({"items": [r.to_dict() for r in returns], "count": len(returns)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@returns_bp.get("/<int:return_id>")
@require_auth
@require_role(*RETURN_ROLES)
def get_return_route(return_id: int):
    try:
        return_doc = return_service.get_return(return_id)
        return jsonify({"return": return_doc.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
