# Overview: Password hashing, user accounts and credential checks.

"""
Authentication Service

WHY: Every sale, stock movement and finance record must be attributable to a
user. Passwords are hashed with bcrypt; the only strength rule is a minimum
length.

Session tokens are managed separately (see session_service.py).
"""

import bcrypt
from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import USER_ROLES
from ..time_utils import utcnow
from . import session_service

MIN_PASSWORD_LENGTH = 8


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Cost factor comes from BCRYPT_ROUNDS (12 by default). Password is
    validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def create_user(name: str, email: str, password: str, role: str = "USER") -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: missing name/email, unknown role or weak password
        ConflictError: email already registered
    """
    email = _normalize_email(email)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("Email already registered", details={"email": email})

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
    Return the active user for these credentials, or None.

    Updates last_login_at on success.
    """
    if not email or not password:
        return None
    user = db.session.query(User).filter(
        User.email == _normalize_email(email),
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.name.asc(), User.id.asc()).all()


def update_user(user_id: int, *, name=None, role=None, is_active=None, password=None) -> User:
    """Admin update. Deactivating a user or changing the password ends their sessions."""
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFoundError("User not found", details={"user_id": user_id})

    if name is not None:
        if not str(name).strip():
            raise ValidationError("name cannot be blank")
        user.name = str(name).strip()
    if role is not None:
        if role not in USER_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
        user.role = role
    if password is not None:
        user.password_hash = hash_password(password)
    if is_active is not None:
        if not isinstance(is_active, bool):
            raise ValidationError("is_active must be true or false")
        user.is_active = is_active

    db.session.commit()

    if password is not None or is_active is False:
        session_service.revoke_all_user_sessions(user.id, reason="Account updated by admin")
    return user
