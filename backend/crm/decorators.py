# Overview: Request decorators for API routes; session context and capability gates.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, permission_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid session and build the request's SessionContext.

    Sets:
    - g.context: SessionContext (actor, role, store_id, session)
    - g.current_user: the acting Profile
    - g.token: the plaintext bearer token (for logout)

    Returns 401 if the header is missing, or the token is unknown, revoked,
    expired or belongs to a removed profile. Role and store are re-read from
    storage on every request.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.context = context
        g.current_user = context.actor
        g.token = token
        return f(*args, **kwargs)

    return decorated_function


def require_capability(predicate, action: str):
    """
    Gate a route on a role predicate, e.g. require_capability(can_manage_users, "MANAGE_USERS").

    Services re-check the same predicate; this only fails fast with a 403.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            context = getattr(g, "context", None)
            if context is None:
                return jsonify({"error": "Authentication required"}), 401

            if not predicate(context.role):
                permission_service.log_security_event(
                    context.actor_id,
                    "PERMISSION_DENIED",
                    False,
                    action=action,
                    reason=f"{context.role.value} lacks {action}",
                )
                return jsonify({
                    "error": "You don't have permission to do that.",
                    "required_capability": action,
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
