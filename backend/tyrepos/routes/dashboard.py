# Overview: Flask API routes for the landing dashboard and the item balance report.

from flask import Blueprint, jsonify

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import dashboard_service
from ..validation import NotFoundError


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")
item_balance_bp = Blueprint("item_balance", __name__, url_prefix="/api/item-balance")


@dashboard_bp.get("/stats")
@require_auth
def dashboard_stats_route():
    return jsonify(dashboard_service.dashboard_stats()), 200


@item_balance_bp.get("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def item_balance_route():
    """Purchased vs sold quantities per item over the last 30 days."""
    return jsonify(dashboard_service.item_balance()), 200


@item_balance_bp.get("/<int:item_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def item_balance_by_id_route(item_id: int):
    try:
        return jsonify(dashboard_service.item_balance(item_id=item_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
