from flask import Blueprint, jsonify

from security.pipeline import request_payload
from services import get_swap_service
from utils.auth_context import token_required
from utils.errors import Forbidden

swaps_bp = Blueprint("swaps", __name__, url_prefix="/api/swaps")


def _require_self(current_user, user_id: str):
    if current_user.user_id != user_id:
        raise Forbidden("You can only view your own requests")


@swaps_bp.post("/request")
@token_required
def create_request(current_user):
    data = request_payload()
    record = get_swap_service().create_request(
        current_user.user_id,
        data.get("toUserId"),
        data.get("skillOffered"),
        data.get("skillWanted"),
        data.get("message"),
    )
    return jsonify(message="Swap request sent successfully", request=record.to_document()), 201


@swaps_bp.get("/incoming/<user_id>")
@token_required
def incoming(user_id, current_user):
    _require_self(current_user, user_id)
    return jsonify(get_swap_service().list_incoming(user_id)), 200


@swaps_bp.get("/outgoing/<user_id>")
@token_required
def outgoing(user_id, current_user):
    _require_self(current_user, user_id)
    return jsonify(get_swap_service().list_outgoing(user_id)), 200


@swaps_bp.get("/completed/<user_id>")
@token_required
def completed(user_id, current_user):
    _require_self(current_user, user_id)
    return jsonify(get_swap_service().list_completed(user_id)), 200


@swaps_bp.put("/accept/<request_id>")
@token_required
def accept(request_id, current_user):
    record = get_swap_service().accept(request_id, current_user.user_id)
    return jsonify(message="Swap request accepted successfully", request=record.to_document()), 200


@swaps_bp.put("/decline/<request_id>")
@token_required
def decline(request_id, current_user):
    record = get_swap_service().decline(request_id, current_user.user_id)
    return jsonify(message="Swap request declined", request=record.to_document()), 200


@swaps_bp.put("/complete/<request_id>")
@token_required
def complete(request_id, current_user):
    record = get_swap_service().complete(request_id, current_user.user_id)
    return jsonify(message="Swap marked as completed", request=record.to_document()), 200


@swaps_bp.delete("/<request_id>")
@token_required
def delete_request(request_id, current_user):
    get_swap_service().delete(request_id, current_user.user_id)
    return jsonify(message="Swap request deleted"), 200
