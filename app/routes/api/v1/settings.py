from flask import Blueprint, jsonify

from app.services import PlatformService

api_settings_bp = Blueprint("api_settings", __name__)


@api_settings_bp.get("/pricing")
def pricing():
    return jsonify(PlatformService.pricing_config().as_dict())
