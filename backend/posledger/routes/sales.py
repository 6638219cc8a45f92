# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API Routes

SECURITY:
- Create: ADMIN, MANAGER, CASHIER
- Read: ADMIN, MANAGER, CASHIER, REPORTS_VIEWER
- Cancel: ADMIN, MANAGER
- The authenticated user is recorded as the seller and as the actor of every
  stock movement
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import BadRequestError, InternalServiceError, ServiceError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER, ROLE_REPORTS_VIEWER
from ..services import return_service, sales_service
from ..services.unit_of_work import run_with_configured_retry
from ..time_utils import parse_time_range
from ..validation import coerce_optional_int

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SALE_WRITE_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)
SALE_READ_ROLES = SALE_WRITE_ROLES + (ROLE_REPORTS_VIEWER,)
SALE_CANCEL_ROLES = (ROLE_ADMIN, ROLE_MANAGER)


@sales_bp.post("/")
@require_auth
@require_role(*SALE_WRITE_ROLES)
def create_sale_route():
    """
    Create a completed sale.

    Request body:
    {
        "lines": [{"product_id": 1, "quantity": 2}, ...],
        "payment_method": "CASH",
        "customer_id": 3,                 (optional)
        "discount_percent": "10.00",      (optional)
        "discount_amount_cents": 500,     (optional)
        "notes": "...",                   (optional)
        "receipt_number": "POS-1001"      (optional, generated when absent; "R-" is reserved)
    }

    Tax is always SALES_TAX_RATE_BPS from the app config.

    Returns:
        201: Sale created
        400: Invalid input
        404: Customer or product not found
        409: Insufficient stock or inactive product
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        tax_rate_bps = current_app.config.get("SALES_TAX_RATE_BPS", 0)

        sale = run_with_configured_retry(
            lambda: sales_service.create_sale(
                user_id=g.current_user.id,
                lines=data.get("lines"),
                payment_method=data.get("payment_method"),
                customer_id=coerce_optional_int(data.get("customer_id"), "customer_id"),
                discount_percent=data.get("discount_percent", 0),
                discount_amount_cents=data.get("discount_amount_cents", 0),
                tax_rate_bps=tax_rate_bps,
                notes=data.get("notes"),
                receipt_number=data.get("receipt_number"),
            )
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify(InternalServiceError().to_dict()), 500


@sales_bp.get("/")
@require_auth
@require_role(*SALE_READ_ROLES)
def list_sales_route():
    try:
        try:
            start, end = parse_time_range(request.args.get("start"), request.args.get("end"))
        except ValueError:
            raise BadRequestError("start/end must be ISO-8601 datetimes with start <= end")

        sales = sales_service.list_sales(
            status=request.args.get("status") or None,
            user_id=coerce_optional_int(request.args.get("user_id"), "user_id"),
            start=start,
            end=end,
        )
        return jsonify({"items": [s.to_dict(include_lines=False) for s in sales], "count": len(sales)}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_role(*SALE_READ_ROLES)
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.get("/<int:sale_id>/returns")
@require_auth
@require_role(*SALE_READ_ROLES)
def list_sale_returns_route(sale_id: int):
    try:
        returns = return_service.list_returns_for_sale(sale_id)
        return jsonify({"items": [r.to_dict() for r in returns], "count": len(returns)}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_role(*SALE_CANCEL_ROLES)
def cancel_sale_route(sale_id: int):
    """
    Cancel a completed sale and restore its stock.

    Request body: {"reason": "..."}  (optional)

    Returns:
        200: Sale cancelled
        404: Sale not found
        409: Sale already cancelled or has returns
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = run_with_configured_retry(
            lambda: sales_service.cancel_sale(
                sale_id=sale_id,
                user_id=g.current_user.id,
                reason=data.get("reason"),
            )
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify(InternalServiceError().to_dict()), 500
