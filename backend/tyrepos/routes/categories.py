# Overview: Flask API routes for item categories.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER
from ..services import category_service
from ..validation import ConflictError, NotFoundError, ValidationError


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
def list_categories_route():
    categories = category_service.list_categories()
    return jsonify({"items": [c.to_dict() for c in categories], "count": len(categories)}), 200


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    try:
        return jsonify(category_service.get_category(category_id).to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@categories_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def create_category_route():
    data = request.get_json(silent=True) or {}
    try:
        category = category_service.create_category(data)
        return jsonify(category.to_dict()), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.put("/<int:category_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_category_route(category_id: int):
    data = request.get_json(silent=True) or {}
    try:
        category = category_service.update_category(category_id, data)
        return jsonify(category.to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_category_route(category_id: int):
    try:
        category_service.delete_category(category_id)
        return jsonify({"message": "Category deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
