import hashlib
import hmac

from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user

from app.errors import Forbidden
from app.extensions import limiter
from app.routes.api.v1.helpers import booking_response, json_payload
from app.services import BookingService, retry_on_conflict

api_payment_bp = Blueprint("api_payment", __name__)


def _callback_limit():
    return current_app.config["PAYMENT_CALLBACK_RATE_LIMIT"]


def _signature():
    return (request.headers.get(current_app.config["PAYMENT_SIGNATURE_HEADER"]) or "").strip()


def _signed_by_gateway():
    secret = current_app.config.get("PAYMENT_WEBHOOK_SECRET")
    signature = _signature()
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), request.get_data(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


@api_payment_bp.before_request
def ensure_payment_collaborator():
    # Only the gateway (signed body) or an admin may confirm captured money.
    if _signed_by_gateway():
        return None
    if _signature():
        current_app.logger.warning("Rejected payment callback with a bad signature on %s", request.path)
        raise Forbidden("Invalid payment signature.")
    if not current_user.is_authenticated:
        abort(401)
    if current_user.role != "admin":
        raise Forbidden("Payments are confirmed by the payment gateway.")
    return None


def _payment_response(booking):
    if current_user.is_authenticated:
        return booking_response(booking)
    return jsonify({"ok": True, "booking_id": booking.id, "status": booking.status})


@api_payment_bp.post("/bookings/<int:booking_id>/advance")
@limiter.limit(_callback_limit)
def confirm_advance(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: BookingService.confirm_advance_payment(
            booking_id,
            amount=payload.get("amount"),
            gateway_reference=payload.get("gateway_reference"),
        )
    )
    return _payment_response(booking)


@api_payment_bp.post("/bookings/<int:booking_id>/remaining")
@limiter.limit(_callback_limit)
def confirm_remaining(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: BookingService.confirm_remaining_payment(
            booking_id,
            amount=payload.get("amount"),
            gateway_reference=payload.get("gateway_reference"),
        )
    )
    return _payment_response(booking)
