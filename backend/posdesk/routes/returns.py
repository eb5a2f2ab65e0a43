# Overview: Flask API routes for reception-desk returns; parses input and returns JSON responses.

# backend/posdesk/routes/returns.py
"""
Returns & Refunds API Routes

WHY: The reception desk finds a sale, sees what is still returnable and
commits a return in one request. No draft/approval workflow: a return
either commits whole or is rejected with nothing written.

SECURITY:
- PROCESS_RETURN required to search sales, look up lines and submit returns
- VIEW_RETURNS required to read committed returns
- Customer phone/email are masked unless the user has VIEW_CUSTOMER_CONTACT
- Committed returns record the acting user
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import return_service, permission_service
from ..services.return_service import (
    ReturnContext,
    ReturnError,
    ReturnNotFoundError,
    InvalidReturnError,
    ConflictingStateError,
    StorageFailureError,
)
from ..decorators import require_auth, require_permission


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


def _return_context() -> ReturnContext:
    user = g.current_user
    return ReturnContext(
        user_id=user.id,
        can_view_customer_contact=permission_service.user_has_permission(user.id, "VIEW_CUSTOMER_CONTACT"),
    )


def _error_response(e: ReturnError):
    if isinstance(e, ReturnNotFoundError):
        status = 404
    elif isinstance(e, InvalidReturnError):
        status = 400
    elif isinstance(e, ConflictingStateError):
        status = 409
    elif isinstance(e, StorageFailureError):
        # Details were logged by the service
        return jsonify({"error": "Internal server error"}), 500
    else:
        status = 400
    return jsonify(e.to_dict()), status


# =============================================================================
# SALE LOOKUP
# =============================================================================

@returns_bp.get("/sales/search")
@require_auth
@require_permission("PROCESS_RETURN")
def search_sales_route():
    """
    Search sales to return against, newest first.

    Requires: PROCESS_RETURN permission

    Query params (all optional):
        term: customer name/phone/email fragment, or a receipt number
        date_from: YYYY-MM-DD or ISO-8601 datetime
        date_to: YYYY-MM-DD (whole day included) or ISO-8601 datetime
        receipt_number: e.g. RCP-000123

    Malformed filters are ignored and listed under "ignored_filters".
    """
    try:
        result = return_service.search_sales(
            term=request.args.get("term"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            receipt_number=request.args.get("receipt_number"),
            context=_return_context(),
        )
        return jsonify(result), 200

    except ReturnError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to search sales for return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/sales/<int:sale_id>")
@require_auth
@require_permission("PROCESS_RETURN")
def get_returnable_sale_route(sale_id: int):
    """
    Get a sale with the quantity still returnable on each line.

    Returns:
        200: {sale, items, fully_returned}
        404: Sale not found
    """
    try:
        result = return_service.lookup_returnable(sale_id, context=_return_context())
        return jsonify(result), 200

    except ReturnError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sale %s for return", sale_id)
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/sales/<int:sale_id>/returns")
@require_auth
@require_permission("VIEW_RETURNS")
def list_sale_returns_route(sale_id: int):
    """List the returns already committed against a sale."""
    try:
        returns = return_service.list_sale_returns(sale_id)
        return jsonify({"returns": returns, "count": len(returns)}), 200

    except ReturnError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list returns for sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RETURN SUBMISSION
# =============================================================================

@returns_bp.post("/")
@require_auth
@require_permission("PROCESS_RETURN")
def submit_return_route():
    """
    Validate and commit a return.

    Requires: PROCESS_RETURN permission
    Available to: admin, manager, cashier

    Request body:
    {
        "sale_id": 42,
        "return_type": "refund",          (refund | exchange)
        "refund_method": "cash",          (cash for refund, store_credit for exchange)
        "reason": "defective",
        "notes": "Box opened",            (optional)
        "items": [
            {"sale_line_item_id": 7, "quantity": 1, "condition": "new", "condition_notes": null}
        ]
    }

    Returns:
        201: {return_id, return_number, return, line_items, total_amount, total_amount_cents}
        400: Invalid request (error, field, sale_line_item_id)
        404: Sale not found
        409: Another return for the same sale committed first
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "JSON body required"}), 400

        sale_id = data.get("sale_id")
        if isinstance(sale_id, bool) or not isinstance(sale_id, int):
            return jsonify({"error": "sale_id must be an integer", "field": "sale_id"}), 400

        result = return_service.submit_return(
            sale_id=sale_id,
            return_type=data.get("return_type"),
            refund_method=data.get("refund_method"),
            reason=data.get("reason"),
            notes=data.get("notes"),
            items=data.get("items"),
            context=_return_context(),
        )
        return jsonify(result), 201

    except ReturnError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to submit return")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RETURN DETAIL
# =============================================================================

@returns_bp.get("/<int:return_id>")
@require_auth
@require_permission("VIEW_RETURNS")
def get_return_route(return_id: int):
    """
    Get a committed return with its lines (for display and reprint).

    Returns:
        200: {return_record, line_items, sale}
        404: Return not found
    """
    try:
        result = return_service.get_return(return_id, context=_return_context())
        return jsonify(result), 200

    except ReturnError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get return %s", return_id)
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/options")
@require_auth
@require_permission("PROCESS_RETURN")
def return_options_route():
    """Return types, refund methods, reasons and conditions for the returns form."""
    return jsonify(return_service.return_options()), 200
