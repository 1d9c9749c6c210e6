# Overview: Signed bearer tokens (JWT, HS256) for API authentication.

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from ..extensions import db
from ..models import User

ALGORITHM = "HS256"


def _secret() -> str:
    cfg = current_app.config
    return cfg.get("JWT_SECRET") or cfg["SECRET_KEY"]


def issue_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(hours=current_app.config.get("JWT_EXPIRES_HOURS", 24)),
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def resolve_token(token: str) -> User | None:
    """
    Decode a bearer token and load its user.

    Returns None for expired / tampered tokens, unknown users and
    deactivated users.
    """
    try:
        payload = jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None

    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return None
    return user
