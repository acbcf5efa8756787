from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from app.errors import ValidationError
from app.routes.api.v1.helpers import json_payload
from app.services import NotificationService

api_notification_bp = Blueprint("api_notification", __name__)


@api_notification_bp.get("/me")
@login_required
def my_notifications():
    limit = max(1, min(request.args.get("limit", 20, type=int), 100))
    unread_only = request.args.get("unread", "").lower() in {"1", "true", "yes"}
    items = NotificationService.latest_for_user(current_user.id, limit=limit, unread_only=unread_only)
    return jsonify(
        {
            "unread": NotificationService.unread_count(current_user.id),
            "items": [n.to_dict() for n in items],
        }
    )


@api_notification_bp.post("/me/read")
@login_required
def mark_read():
    ids = json_payload().get("ids")
    if ids is not None and (not isinstance(ids, list) or not all(isinstance(i, int) for i in ids)):
        raise ValidationError("ids must be a list of notification ids.")
    updated = NotificationService.mark_read(current_user.id, ids=ids)
    return jsonify({"ok": True, "updated": updated})
