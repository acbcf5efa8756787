from flask import jsonify, request
from flask_login import current_user

from app.errors import ValidationError
from app.services.status_projector import project


def json_payload():
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload


def actor():
    return current_user._get_current_object()


def booking_response(booking, status=200):
    return jsonify(project(booking, current_user.role)), status


def page_args():
    return request.args.get("page", 1, type=int), request.args.get("per_page", 20, type=int)
