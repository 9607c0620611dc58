# Overview: Maps service exceptions onto JSON error responses.

"""
One mapping for every route:

    ValidationError        400
    PermissionDeniedError  403
    NotFoundError          404
    ConflictError          409
    PartialDeletionError   500  (data removed, account still present)
    DependencyError        503

Bodies carry "error" (detail) and "message" (short text safe to show a user).
"""

from flask import jsonify, current_app

from .validation import ValidationError, ConflictError, NotFoundError, DependencyError
from .services.permission_service import PermissionDeniedError
from .services.user_admin_service import PartialDeletionError

PERMISSION_MESSAGE = "You don't have permission to do that."
CONFLICT_MESSAGE = "That value is already taken."
NOT_FOUND_MESSAGE = "That record no longer exists."
GENERIC_MESSAGE = "Something went wrong, please try again."
PARTIAL_DELETE_MESSAGE = "The user's data was removed but the account could not be deleted. Try again."


def error_response(exc: Exception):
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc), "message": str(exc)}), 400
    if isinstance(exc, PermissionDeniedError):
        return jsonify({"error": str(exc), "message": PERMISSION_MESSAGE}), 403
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc), "message": NOT_FOUND_MESSAGE}), 404
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc), "message": CONFLICT_MESSAGE}), 409
    if isinstance(exc, PartialDeletionError):
        return jsonify({
            "error": str(exc),
            "message": PARTIAL_DELETE_MESSAGE,
            "partial": True,
            "interactions_deleted": exc.interactions_deleted,
        }), 500
    if isinstance(exc, DependencyError):
        return jsonify({"error": str(exc), "message": GENERIC_MESSAGE}), 503

    current_app.logger.exception("Unhandled error")
    return jsonify({"error": "Internal error", "message": GENERIC_MESSAGE}), 500


SERVICE_ERRORS = (
    ValidationError,
    PermissionDeniedError,
    NotFoundError,
    ConflictError,
    DependencyError,
)
