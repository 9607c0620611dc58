# Overview: Identity provider operations; credentials, sign-up, sign-in and identity removal.

"""
Identity Service

WHY: Every interaction must be attributable to one signed-in actor.
Uses bcrypt for password hashing and validates password strength.

The identity (credentials) and the profile (CRM actor) are separate rows
sharing one id. Sign-up creates both in a single transaction; role metadata
is parsed strictly into Role before it reaches the profile.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with upper, lower, digit and special character
- Sign-in is by username, resolved to the identity email server-side
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import logging
import re

import bcrypt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Identity, Profile, SessionToken, Store, UserStore
from ..permissions import Role, parse_role
from ..time_utils import utcnow
from ..validation import ValidationError, ConflictError, NotFoundError, DependencyError, require_text
from . import change_feed, permission_service, session_service

logger = logging.getLogger(__name__)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12 (validates strength first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never verify."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def sign_up(
    email: str,
    password: str,
    metadata: dict,
    *,
    store_id: int | None = None,
) -> Profile:
    """
    Create identity + profile (and optional store assignment) atomically.

    metadata keys: username, full_name, role. The role is untrusted input:
    anything that is not one of the four roles becomes SALESPERSON.

    Raises:
        ValidationError: missing/blank fields or weak password
        ConflictError: username or email already taken
        NotFoundError: store_id does not exist
        DependencyError: storage failure
    """
    email = require_text(email, "email", max_length=255).lower()
    username = require_text(metadata.get("username"), "username", max_length=64)
    full_name = require_text(metadata.get("full_name"), "full_name", max_length=120)
    role = parse_role(metadata.get("role"), default=Role.SALESPERSON)

    if db.session.query(Profile.id).filter(Profile.username == username).first():
        raise ConflictError(f"Username '{username}' is already taken")
    if db.session.query(Identity.id).filter(Identity.email == email).first():
        raise ConflictError(f"Email '{email}' is already registered")

    if store_id is not None and db.session.get(Store, store_id) is None:
        raise NotFoundError("Store not found")

    password_hash = hash_password(password)

    try:
        identity = Identity(email=email, password_hash=password_hash)
        db.session.add(identity)
        db.session.flush()

        now = utcnow()
        profile = Profile(
            id=identity.id,
            username=username,
            full_name=full_name,
            email=email,
            role=role,
            created_at=now,
            updated_at=now,
        )
        db.session.add(profile)

        if store_id is not None:
            db.session.add(UserStore(user_id=identity.id, store_id=store_id))

        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username or email already exists")
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Sign-up failed for %s", username)
        raise DependencyError("Could not create account") from exc

    return profile


def authenticate(username: str, password: str) -> Profile | None:
    """
    Resolve username to its identity and verify the password.

    Returns the Profile on success, None otherwise. Updates last_sign_in_at.
    """
    if not username or not password:
        return None

    profile = db.session.query(Profile).filter(Profile.username == username.strip()).first()
    if not profile:
        return None

    identity = db.session.query(Identity).filter(Identity.email == profile.email).first()
    if not identity or not verify_password(password, identity.password_hash):
        return None

    identity.last_sign_in_at = utcnow()
    db.session.commit()
    return profile


def set_password(identity_id: int, new_password: str) -> Identity:
    """Force-set a password (privileged; authorization happens in the caller)."""
    identity = db.session.get(Identity, identity_id)
    if not identity:
        raise NotFoundError("User not found")

    password_hash = hash_password(new_password)
    try:
        identity.password_hash = password_hash
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Password update failed for identity %s", identity_id)
        raise DependencyError("Could not update password") from exc
    return identity


def delete_identity(identity_id: int) -> None:
    """
    Remove the profile, its sessions and the identity record.

    Callers must already have removed rows that reference the profile
    (interactions, store assignment).
    """
    try:
        db.session.query(SessionToken).filter(SessionToken.identity_id == identity_id).delete(
            synchronize_session=False
        )
        db.session.query(Profile).filter(Profile.id == identity_id).delete(synchronize_session=False)
        deleted = db.session.query(Identity).filter(Identity.id == identity_id).delete(
            synchronize_session=False
        )
        if not deleted:
            db.session.rollback()
            raise NotFoundError("User not found")
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Identity removal failed for %s", identity_id)
        raise DependencyError("Could not remove account") from exc


def sign_in(
    username: str,
    password: str,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[Profile, str] | None:
    """
    Authenticate and open a session.

    Returns (profile, plaintext_token) or None. The token is only ever
    returned here; storage keeps its hash.
    """
    profile = authenticate(username, password)
    if not profile:
        permission_service.log_security_event(
            None,
            "LOGIN_FAILED",
            False,
            action="LOGIN",
            reason=f"Bad credentials for {(username or '').strip()[:64]}",
        )
        return None

    _, token = session_service.create_session(profile.id, user_agent=user_agent, ip_address=ip_address)
    return profile, token


def sign_out(context, token: str) -> bool:
    """Revoke the token and close the change subscriptions opened from that session."""
    session_id = context.session.id if context.session is not None else None
    revoked = session_service.revoke_session(token, reason="User logout")
    if session_id is not None:
        change_feed.feed.close_session(session_id)
    return revoked
