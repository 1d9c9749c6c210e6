# Overview: Service-layer operations for staff accounts; password hashing and credential checks.

"""
Authentication Service

WHY: Every sale and stock change must be attributable to a person.
Uses bcrypt for password hashing.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 6 characters required
- Bearer tokens are issued separately (see token_service.py)
"""

import bcrypt
from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_ALIASES, ROLE_CASHIER
from ..validation import ConflictError, NotFoundError, ValidationError, normalize_email
from tyrepos.time_utils import utcnow

MIN_PASSWORD_LENGTH = 6


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Returns True if password matches hash, False otherwise."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in storage
        return False


def normalize_role(role: str | None) -> str:
    if not role:
        return ROLE_CASHIER
    role = ROLE_ALIASES.get(role.strip().lower(), role.strip().lower())
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    return role


def create_user(*, name: str, email: str, password: str, role: str | None = None) -> User:
    """
    Create a staff user with a bcrypt-hashed password.

    Raises:
        ValidationError / PasswordValidationError: bad input
        ConflictError: email already registered
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > 100:
        raise ValidationError("name exceeds max length 100")
    email = normalize_email(email)
    role = normalize_role(role)

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("User already exists with this email")

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Return the active user for valid credentials, else None.

    Inactive users are rejected the same way as a wrong password.
    """
    if not email or not password:
        return None
    user = db.session.query(User).filter_by(email=str(email).strip().lower()).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def update_user(user_id: int, data: dict) -> User:
    user = get_user(user_id)

    if "name" in data:
        name = str(data["name"] or "").strip()
        if not name:
            raise ValidationError("name cannot be blank")
        user.name = name
    if "email" in data:
        email = normalize_email(data["email"])
        clash = db.session.query(User).filter(User.email == email, User.id != user.id).first()
        if clash:
            raise ConflictError("User already exists with this email")
        user.email = email
    if "role" in data:
        user.role = normalize_role(data["role"])
    if "is_active" in data:
        user.is_active = bool(data["is_active"])
    if data.get("password"):
        user.password_hash = hash_password(data["password"])

    db.session.commit()
    return user


def deactivate_user(user_id: int) -> User:
    user = get_user(user_id)
    user.is_active = False
    db.session.commit()
    return user
