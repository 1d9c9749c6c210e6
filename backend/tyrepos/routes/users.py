# Overview: Flask API routes for staff account administration.

"""
User Management Routes

SECURITY: All routes require authentication and the admin role.
Accounts are never hard-deleted; DELETE deactivates so attribution on
sales and logs stays intact.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN
from ..services import audit_service, auth_service
from ..validation import ConflictError, NotFoundError, ValidationError


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    users = query.order_by(User.name.asc(), User.id.asc()).all()
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_user_route(user_id: int):
    try:
        return jsonify(auth_service.get_user(user_id).to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@users_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    """
    Create a staff account.

    Request body:
    {
        "name": "Nimal Perera",
        "email": "nimal@example.com",
        "password": "secret1",     // at least 6 characters
        "role": "cashier"          // admin | manager | cashier ("user" = cashier)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            name=data.get("name"),
            email=data.get("email"),
            password=data.get("password"),
            role=data.get("role"),
        )
        audit_service.log_activity_safely(
            activity="user_created",
            description=f"Created {user.role} account {user.email}",
            user=g.current_user,
            entity_type="user",
            entity_id=user.id,
        )
        return jsonify(user.to_dict()), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.update_user(user_id, data)
        return jsonify(user.to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def deactivate_user_route(user_id: int):
    if user_id == g.current_user.id:
        return jsonify({"error": "You cannot deactivate your own account"}), 400
    try:
        user = auth_service.deactivate_user(user_id)
        audit_service.log_activity_safely(
            activity="user_deactivated",
            description=f"Deactivated account {user.email}",
            user=g.current_user,
            entity_type="user",
            entity_id=user.id,
        )
        return jsonify(user.to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
