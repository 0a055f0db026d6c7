import time

from flask import Blueprint, jsonify

from utils.timeutil import now_utc, to_iso

health_bp = Blueprint("health", __name__)

_STARTED = time.monotonic()


@health_bp.get("/")
def index():
    return jsonify(
        message="Skill Swap API is running",
        version="1.0.0",
        timestamp=to_iso(now_utc()),
    ), 200


@health_bp.get("/health")
def health():
    return jsonify(
        status="healthy",
        uptime=round(time.monotonic() - _STARTED, 3),
        timestamp=to_iso(now_utc()),
    ), 200
