# Overview: Opaque bearer tokens with absolute and idle timeouts.

"""
Session tokens

The client holds a random 64-hex-char token; the database only keeps its
SHA-256. A token stops working when it is revoked (logout, password change,
deactivation), when SESSION_ABSOLUTE_HOURS have passed since login, or when
it has been idle for SESSION_IDLE_MINUTES.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_MINUTES", 120))


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find_open(token: str) -> SessionToken | None:
    if not token:
        return None
    return (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.is_revoked.is_(False))
        .first()
    )


def _mark_revoked(rows, reason: str) -> int:
    now = utcnow()
    for row in rows:
        row.is_revoked = True
        row.revoked_at = now
        row.revoked_reason = reason
    db.session.commit()
    return len(rows)


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """Open a session for a freshly authenticated user. Returns (row, plaintext token)."""
    token = generate_token()
    now = utcnow()
    row = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
    )
    db.session.add(row)
    db.session.commit()
    return row, token


def validate_session(token: str) -> User | None:
    """
    Resolve a bearer token to its active user, or None.

    Idle sessions and sessions of deactivated users are revoked on the spot;
    expired ones are simply refused. A successful check slides the idle window.
    """
    row = _find_open(token)
    if row is None:
        return None

    now = utcnow()
    if row.expires_at < now:
        return None
    if now - row.last_used_at > _idle_timeout():
        _mark_revoked([row], "Idle timeout")
        return None
    if row.user is None or not row.user.is_active:
        _mark_revoked([row], "User account deactivated")
        return None

    row.last_used_at = now
    db.session.commit()
    return row.user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    row = _find_open(token)
    if row is None:
        return False
    _mark_revoked([row], reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    rows = (
        db.session.query(SessionToken)
        .filter(SessionToken.user_id == user_id, SessionToken.is_revoked.is_(False))
        .all()
    )
    return _mark_revoked(rows, reason)
