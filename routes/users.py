from flask import Blueprint, jsonify

from services import get_auth_service
from utils.auth_context import token_required
from utils.timeutil import to_iso

users_bp = Blueprint("users", __name__, url_prefix="/api")


@users_bp.get("/profile")
@token_required
def profile(current_user):
    user = get_auth_service().get_profile(current_user.user_id)
    return jsonify(
        id=user.id,
        username=user.username,
        email=user.email,
        rating=user.rating,
        createdAt=to_iso(user.created_at),
        lastLogin=to_iso(user.last_login),
    ), 200
