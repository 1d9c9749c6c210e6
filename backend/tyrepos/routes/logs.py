# Overview: Flask API routes for the audit trail (activity and stock-edit logs).

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import log_service
from ..validation import ValidationError
from tyrepos.time_utils import parse_iso_date


logs_bp = Blueprint("logs", __name__, url_prefix="/api/logs")


def _date_range():
    return (
        parse_iso_date(request.args.get("from_date")),
        parse_iso_date(request.args.get("to_date")),
    )


@logs_bp.get("/activity")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def list_activity_route():
    """
    Activity log, newest first.

    Query parameters:
    - from_date / to_date: YYYY-MM-DD, inclusive (default: last 7 days)
    - activity: exact activity name (e.g. sale_created)
    - user_id
    - page / limit (default 1 / 50)
    """
    try:
        from_day, to_day = _date_range()
    except ValueError:
        return jsonify({"error": "Invalid date format, use YYYY-MM-DD"}), 400
    try:
        result = log_service.list_activity(
            from_day=from_day,
            to_day=to_day,
            activity=request.args.get("activity"),
            user_id=request.args.get("user_id", type=int),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 50, type=int),
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@logs_bp.get("/stock-edits")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def list_stock_edits_route():
    """
    Stock edit log, newest first.

    Query parameters:
    - from_date / to_date: YYYY-MM-DD, inclusive (default: last 30 days)
    - operation: stock_update | price_update | ... | sale | sale_reversal
    - item_code
    - page / limit (default 1 / 50)
    """
    try:
        from_day, to_day = _date_range()
    except ValueError:
        return jsonify({"error": "Invalid date format, use YYYY-MM-DD"}), 400
    try:
        result = log_service.list_stock_edits(
            from_day=from_day,
            to_day=to_day,
            operation=request.args.get("operation"),
            item_code=request.args.get("item_code"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 50, type=int),
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@logs_bp.get("/summary")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def logs_summary_route():
    try:
        from_day, to_day = _date_range()
    except ValueError:
        return jsonify({"error": "Invalid date format, use YYYY-MM-DD"}), 400
    try:
        return jsonify(log_service.summary(from_day=from_day, to_day=to_day)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
