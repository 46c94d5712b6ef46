from flask import Blueprint, jsonify, current_app

from utils.timeutil import utcnow, isoformat_utc

health_bp = Blueprint("health", __name__, url_prefix="/api")


@health_bp.get("/health")
def health():
    return jsonify(
        status="OK",
        timestamp=isoformat_utc(utcnow()),
        service=current_app.config.get("SERVICE_NAME", "Act University Backend API"),
    ), 200
