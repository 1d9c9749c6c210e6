# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/tyrepos/routes/auth.py
"""
Authentication API routes

- POST /api/auth/login exchanges email + password for a bearer token
- GET /api/auth/me returns the user behind the token

Tokens are stateless JWTs; there is no server-side session to revoke.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import audit_service
from ..services import auth_service
from ..services import token_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and issue a token.

    Token must be included in Authorization header for protected routes.
    Wrong credentials and deactivated accounts both return 401.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        token = token_service.issue_token(user)
        audit_service.log_activity_safely(
            activity="user_login",
            description=f"{user.name} logged in",
            user=user,
            entity_type="user",
            entity_id=user.id,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
