# Overview: Flask API routes for interactions; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..errors import error_response, SERVICE_ERRORS
from ..services import interaction_service
from ..services.visibility_service import InteractionFilters


interactions_bp = Blueprint("interactions", __name__, url_prefix="/api/interactions")


@interactions_bp.get("")
@require_auth
def list_interactions_route():
    """
    Interactions visible to the caller, newest first.

    Query params (all optional, ANDed with the caller's scope):
    - status: Quoted | Closed | Lost
    - start_date, end_date: YYYY-MM-DD, inclusive
    - store_id, user_id: int
    - reason: loss reason
    """
    try:
        filters = InteractionFilters.from_mapping(request.args)
    except SERVICE_ERRORS as e:
        return error_response(e)

    interactions = interaction_service.list_interactions(g.context, filters)
    return jsonify({
        "interactions": [i.to_dict() for i in interactions],
        "count": len(interactions),
    })


@interactions_bp.get("/stats")
@require_auth
def interaction_stats_route():
    try:
        filters = InteractionFilters.from_mapping(request.args)
    except SERVICE_ERRORS as e:
        return error_response(e)

    return jsonify({"stats": interaction_service.interaction_stats(g.context, filters)})


@interactions_bp.get("/<int:interaction_id>")
@require_auth
def get_interaction_route(interaction_id: int):
    try:
        interaction = interaction_service.get_interaction(g.context, interaction_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    return jsonify({"interaction": interaction.to_dict()})


@interactions_bp.post("")
@require_auth
def create_interaction_route():
    """
    Record an interaction for the caller.

    Body:
    {
        "client_name": "...",
        "description": "...",
        "status": "Quoted" | "Closed" | "Lost",
        "reason": "Price",             (Lost only; ignored otherwise)
        "monetary_value": 1500.00,     (Closed/Quoted only; ignored for Lost)
        "products": [12, {"custom_description": "Special order"}]
    }
    """
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({"error": "Invalid JSON payload", "message": "Invalid JSON payload"}), 400

    try:
        interaction = interaction_service.create_interaction(g.context, data)
    except SERVICE_ERRORS as e:
        return error_response(e)

    return jsonify({"interaction": interaction.to_dict()}), 201
