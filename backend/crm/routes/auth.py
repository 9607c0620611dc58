# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Sign-in is by username. Accounts are created by administrators only
(POST /api/admin/users or `flask users create`).
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..errors import error_response, SERVICE_ERRORS
from ..permissions import capabilities
from ..services import auth_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    The token must be sent as "Authorization: Bearer <token>" afterwards.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not username or not password:
        return jsonify({"error": "username and password required"}), 400

    try:
        result = auth_service.sign_in(
            username,
            password,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except SERVICE_ERRORS as e:
        return error_response(e)

    if not result:
        return jsonify({"error": "Invalid username or password"}), 401

    profile, token = result
    return jsonify({
        "user": profile.to_dict(),
        "token": token,
        "capabilities": capabilities(profile.role),
    })


@auth_bp.post("/logout")
@require_auth
def logout_route():
    auth_service.sign_out(g.context, g.token)
    return jsonify({"status": "logged_out"})


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current profile, role, store and capability flags for UI gating."""
    context = g.context
    return jsonify({
        "user": context.actor.to_dict(),
        "role": context.role.value,
        "store_id": context.store_id,
        "capabilities": capabilities(context.role),
    })
