# Overview: Session tokens and the explicit SessionContext passed to every operation.

"""
Session Token Management Service

WHY: Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

Every service operation that needs to know who is acting takes a
SessionContext argument. A context is produced by validate_session() when
a request arrives (or by context_for() for CLI and tests) and dies with
the request; sign-out revokes the token so no further context can be built.
Role and store are read from the profile each time, never cached on the token.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute and idle timeouts (SESSION_*_TIMEOUT_HOURS config)
- Revocable on logout, password reset and user deletion
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..models import Profile, SessionToken, UserStore
from ..permissions import Role
from ..time_utils import utcnow


DEFAULT_ABSOLUTE_TIMEOUT = timedelta(hours=24)
DEFAULT_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    """
    Who is acting, as of now.

    store_id is the actor's current single store assignment (or None).
    session is None for contexts built outside HTTP (CLI, tests).
    """
    actor: Profile
    role: Role
    store_id: int | None
    session: SessionToken | None = None

    @property
    def actor_id(self) -> int:
        return self.actor.id


def _timeouts() -> tuple[timedelta, timedelta]:
    if not has_app_context():
        return DEFAULT_ABSOLUTE_TIMEOUT, DEFAULT_IDLE_TIMEOUT
    cfg = current_app.config
    absolute = timedelta(hours=cfg.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))
    idle = timedelta(hours=cfg.get("SESSION_IDLE_TIMEOUT_HOURS", 2))
    return absolute, idle


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy); sent to the client, never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is sufficient for high-entropy tokens."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def current_store_id(profile_id: int) -> int | None:
    row = db.session.query(UserStore.store_id).filter(UserStore.user_id == profile_id).first()
    return row[0] if row else None


def context_for(profile: Profile, session: SessionToken | None = None) -> SessionContext:
    """Build a context from the profile's current role and store assignment."""
    return SessionContext(
        actor=profile,
        role=Role(profile.role),
        store_id=current_store_id(profile.id),
        session=session,
    )


def create_session(
    identity_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a session token for a signed-in identity.

    Returns (session_record, plaintext_token).
    """
    absolute_timeout, _ = _timeouts()
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        identity_id=identity_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + absolute_timeout,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate a token and return a fresh SessionContext.

    Returns None if the token is unknown, revoked, expired, idle too long,
    or its profile no longer exists. Updates last_used_at on success.
    """
    if not token:
        return None

    _, idle_timeout = _timeouts()
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > idle_timeout:
        _revoke(session, "Idle timeout")
        return None

    profile = db.session.get(Profile, session.identity_id)
    if not profile:
        _revoke(session, "Profile removed")
        return None

    session.last_used_at = now
    db.session.commit()

    return context_for(profile, session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke one token. Returns False if it was unknown or already revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True


def revoke_all_sessions(identity_id: int, reason: str = "Revoke all sessions") -> int:
    """Revoke every active session of an identity. Returns the count."""
    now = utcnow()

    sessions = db.session.query(SessionToken).filter_by(
        identity_id=identity_id,
        is_revoked=False,
    ).all()

    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason

    db.session.commit()
    return len(sessions)
