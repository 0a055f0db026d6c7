from flask import Blueprint, jsonify

from security.pipeline import request_payload
from services import get_auth_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register():
    data = request_payload()
    result = get_auth_service().register(
        data.get("username"),
        data.get("email"),
        data.get("password"),
    )
    return jsonify(
        message="User registered successfully",
        token=result.token,
        user=result.user.public(),
    ), 201


@auth_bp.post("/login")
def login():
    data = request_payload()
    result = get_auth_service().login(data.get("email"), data.get("password"))
    return jsonify(
        message="Login successful",
        token=result.token,
        user=result.user.public(),
    ), 200
