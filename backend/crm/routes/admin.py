# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for user and store-assignment management.

BOARD and ADMIN reach these endpoints; the finer rules (which roles BOARD
may grant, ADMIN-only deletion, no self role change) are enforced by
user_admin_service on every call.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_capability
from ..errors import error_response, SERVICE_ERRORS
from ..permissions import can_manage_users
from ..services import user_admin_service
from ..validation import ValidationError

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _optional_int(value, field: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text.isdigit():
        raise ValidationError(f"{field} must be an integer")
    return int(text)


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_capability(can_manage_users, "MANAGE_USERS")
def list_users():
    """All users with role and store name."""
    try:
        users = user_admin_service.list_users(g.context)
    except SERVICE_ERRORS as e:
        return error_response(e)
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@admin_bp.post("/users")
@require_auth
@require_capability(can_manage_users, "MANAGE_USERS")
def create_user():
    """
    Create a user.

    Body: username, full_name, email, password, role (optional), store_id (optional)
    """
    data = request.get_json(silent=True) or {}
    try:
        profile = user_admin_service.create_user(
            g.context,
            username=data.get("username"),
            full_name=data.get("full_name"),
            email=data.get("email"),
            password=data.get("password"),
            role=data.get("role"),
            store_id=_optional_int(data.get("store_id"), "store_id"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)

    return jsonify({"user": profile.to_dict(), "message": "User created successfully"}), 201


@admin_bp.get("/users/<int:user_id>/assignable-roles")
@require_auth
@require_capability(can_manage_users, "MANAGE_USERS")
def assignable_roles(user_id: int):
    try:
        roles = user_admin_service.assignable_roles(g.context, user_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    return jsonify({"roles": [r.value for r in roles]})


@admin_bp.patch("/users/<int:user_id>/role")
@require_auth
@require_capability(can_manage_users, "MANAGE_USERS")
def update_role(user_id: int):
    data = request.get_json(silent=True) or {}
    if not data.get("role"):
        return jsonify({"error": "role is required", "message": "role is required"}), 400

    try:
        profile = user_admin_service.update_role(g.context, user_id, data.get("role"))
    except SERVICE_ERRORS as e:
        return error_response(e)
    return jsonify({"user": profile.to_dict(), "message": "Role updated"})


@admin_bp.put("/users/<int:user_id>/store")
@require_auth
@require_capability(can_manage_users, "MANAGE_USERS")
def update_store(user_id: int):
    """Replace the user's store assignment. {"store_id": null} unassigns."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "store_id" not in data:
        return jsonify({"error": "store_id is required", "message": "store_id is required"}), 400

    try:
        store_id = _optional_int(data.get("store_id"), "store_id")
        assignment = user_admin_service.update_store_assignment(g.context, user_id, store_id)
    except SERVICE_ERRORS as e:
        return error_response(e)

    return jsonify({
        "user_id": user_id,
        "store_id": assignment.store_id if assignment else None,
        "message": "Store assignment updated",
    })


@admin_bp.post("/users/<int:user_id>/password")
@require_auth
@require_capability(can_manage_users, "MANAGE_USERS")
def reset_password(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        revoked = user_admin_service.change_password(g.context, user_id, data.get("password"))
    except SERVICE_ERRORS as e:
        return error_response(e)
    return jsonify({"message": "Password updated", "sessions_revoked": revoked})


@admin_bp.delete("/users/<int:user_id>")
@require_auth
@require_capability(can_manage_users, "MANAGE_USERS")
def delete_user(user_id: int):
    try:
        result = user_admin_service.delete_user(g.context, user_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    return jsonify({**result, "message": "User deleted"})
