# Overview: Flask API routes for store operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_capability
from ..errors import error_response, SERVICE_ERRORS
from ..permissions import can_manage_stores
from ..services import store_service


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
@require_auth
def list_stores_route():
    stores = store_service.list_stores()
    return jsonify({"stores": [s.to_dict() for s in stores]})


@stores_bp.post("")
@require_auth
@require_capability(can_manage_stores, "MANAGE_STORES")
def create_store_route():
    data = request.get_json(silent=True) or {}
    try:
        store = store_service.create_store(g.context, data.get("name"), data.get("address"))
    except SERVICE_ERRORS as e:
        return error_response(e)
    return jsonify({"store": store.to_dict()}), 201
