# Overview: Policy enforcement and security event logging.

"""
Permission Checking and Security Event Logging

Routes and services call require() with one of the predicates from
crm.permissions. A failed check is written to security_events and raised
as PermissionDeniedError. Checks always run server-side, whatever the
client already hid or disabled.

DESIGN PRINCIPLES:
- Fail closed: deny unless a predicate explicitly allows
- Log denials only: granted checks are not logged
"""

from __future__ import annotations

import logging

from flask import has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import SecurityEvent
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """Raised when the acting role may not perform the action."""
    pass


def _client_context() -> tuple[str | None, str | None, str | None]:
    if not has_request_context():
        return None, None, None
    return request.path, request.remote_addr, request.headers.get("User-Agent")


def log_security_event(
    actor_id: int | None,
    event_type: str,
    success: bool,
    *,
    target_id: int | None = None,
    action: str | None = None,
    reason: str | None = None,
    resource: str | None = None,
) -> SecurityEvent | None:
    """
    Append an event to the audit trail in its own commit.

    Audit failures are logged and swallowed so they never mask the outcome
    of the operation being audited.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED
    - USER_CREATED
    - ROLE_CHANGED
    - PASSWORD_RESET
    - STORE_ASSIGNMENT_CHANGED
    - USER_DELETED / USER_DELETE_PARTIAL
    - CATALOG_REPLACED
    """
    path, ip_address, user_agent = _client_context()
    event = SecurityEvent(
        actor_id=actor_id,
        target_id=target_id,
        event_type=event_type,
        resource=resource or path,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    try:
        db.session.add(event)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to record security event %s", event_type)
        return None
    return event


def require(allowed: bool, *, actor_id: int | None, action: str, target_id: int | None = None, reason: str | None = None) -> None:
    """
    Raise PermissionDeniedError (and log it) unless allowed is true.

    Usage:
        require(can_manage_users(ctx.role), actor_id=ctx.actor_id, action="CREATE_STORE")
    """
    if allowed:
        return
    log_security_event(
        actor_id,
        "PERMISSION_DENIED",
        False,
        target_id=target_id,
        action=action,
        reason=reason or f"Not permitted: {action}",
    )
    raise PermissionDeniedError(reason or f"Permission denied: {action}")

