# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .models.auth import ROLE_ALIASES
from .services import token_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and g.current_user is not None


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user to the authenticated User.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, tampered or expired token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        user = token_service.resolve_token(token)

        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the authenticated user to hold one of roles.

    Must be stacked under @require_auth.
    """
    allowed = {ROLE_ALIASES.get(r, r) for r in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.current_user.role not in allowed:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": sorted(allowed),
                    "message": f"Role '{g.current_user.role}' is not authorized to access this route",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
