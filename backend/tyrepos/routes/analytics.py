# Overview: Flask API routes for analytics; parses input and returns JSON responses.

"""
Analytics Routes

Real-time sales, profit / loss, customer behaviour, peak hours and the
daily dashboard summary. Only completed sales are counted.

SECURITY: admin and manager only.
"""

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import reporting_service
from ..services.reporting_service import Granularity, Period, ReportError
from tyrepos.time_utils import parse_iso_date


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.get("/real-time-sales")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def real_time_sales_route():
    try:
        period = Period.parse(request.args.get("period"), Period.TODAY)
        return jsonify(reporting_service.real_time_sales(period=period))
    except ReportError as e:
        return jsonify({"error": str(e)}), 400


@analytics_bp.get("/profit-loss")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def profit_loss_route():
    """
    Query parameters:
    - period: today | week | month (default) | quarter | year
    - group_by: hour | day (default) | week | month
    """
    try:
        period = Period.parse(request.args.get("period"), Period.MONTH)
        granularity = Granularity.parse(request.args.get("group_by"), Granularity.DAY)
        return jsonify(reporting_service.profit_loss(period=period, granularity=granularity))
    except ReportError as e:
        return jsonify({"error": str(e)}), 400


@analytics_bp.get("/customer-behavior")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def customer_behavior_route():
    try:
        period = Period.parse(request.args.get("period"), Period.MONTH)
        return jsonify(reporting_service.customer_behavior(period=period))
    except ReportError as e:
        return jsonify({"error": str(e)}), 400


@analytics_bp.get("/peak-hours")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def peak_hours_route():
    try:
        period = Period.parse(request.args.get("period"), Period.WEEK)
        return jsonify(reporting_service.peak_hours(period=period))
    except ReportError as e:
        return jsonify({"error": str(e)}), 400


@analytics_bp.get("/dashboard-summary")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def dashboard_summary_route():
    try:
        day = parse_iso_date(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "Invalid date format, use YYYY-MM-DD"}), 400
    return jsonify(reporting_service.dashboard_summary(day=day))
