# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/tyrepos/routes/sales.py
"""
Sales Routes

SECURITY: All routes require authentication.
- Any signed-in user can ring up and view sales
- Reports: admin, manager
- Delete (restores stock): admin
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import daily_report_service, sales_service
from ..services.reporting_service import ReportError
from ..services.sales_service import SaleError
from ..validation import NotFoundError
from tyrepos.time_utils import business_tz, local_day_bounds, local_today, parse_iso_date


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a sale.

    Request body:
    {
        "items": [
            {"item": 12, "quantity": 2, "price": 22500, "discount": 5, "total": 42750}
        ],
        "subtotal": 42750,
        "tax": 0,
        "total": 42750,
        "payment_method": "cash",        // cash | card | credit | cheque
        "payment_status": "completed",   // optional
        "customer": 3,                   // optional customer id
        "customer_name": "...",          // optional, default "Walk-in Customer"
        "customer_nic": "...",           // optional, links an existing customer
        "amount_paid": 45000,
        "balance": 2250
    }

    Stock for every line is decremented in the same transaction;
    any shortage rejects the whole sale.
    """
    data = request.get_json(silent=True)
    try:
        sale = sales_service.record_sale(payload=data, cashier=g.current_user)
        return jsonify(sale.to_dict()), 201
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales, newest first.

    Query parameters:
    - from_date / to_date: YYYY-MM-DD business days (inclusive)
    - payment_status: pending | completed | failed
    - search: bill number, customer name or NIC
    - page / per_page
    """
    try:
        from_day = parse_iso_date(request.args.get("from_date"))
        to_day = parse_iso_date(request.args.get("to_date"))
    except ValueError:
        return jsonify({"error": "Invalid date format, use YYYY-MM-DD"}), 400

    tz = business_tz()
    from_dt = local_day_bounds(from_day, tz)[0] if from_day else None
    to_dt = local_day_bounds(to_day, tz)[1] if to_day else None

    result = sales_service.list_sales(
        from_dt=from_dt,
        to_dt=to_dt,
        payment_status=request.args.get("payment_status"),
        search=request.args.get("search"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )
    return jsonify(result), 200


@sales_bp.get("/reports")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def sales_report_route():
    """
    Line-item sales report.

    Query parameters:
    - from_date / to_date: YYYY-MM-DD (default: today)
    - customer_search: filter by customer name, NIC or phone
    """
    try:
        today = local_today(business_tz())
        from_day = parse_iso_date(request.args.get("from_date")) or today
        to_day = parse_iso_date(request.args.get("to_date")) or from_day
    except ValueError:
        return jsonify({"error": "Invalid date format, use YYYY-MM-DD"}), 400

    try:
        report = daily_report_service.build_sales_report(
            from_day=from_day,
            to_day=to_day,
            customer_search=request.args.get("customer_search"),
        )
        return jsonify(report), 200
    except ReportError as e:
        return jsonify({"error": str(e)}), 400


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        return jsonify(sales_service.get_sale(sale_id).to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_sale_route(sale_id: int):
    try:
        result = sales_service.delete_sale(sale_id=sale_id, user=g.current_user)
        return jsonify({"message": "Sale deleted and stock restored", **result}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
