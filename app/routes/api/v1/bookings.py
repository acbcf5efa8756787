from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from app.decorators import role_required
from app.errors import ValidationError
from app.routes.api.v1.helpers import actor, booking_response, json_payload
from app.services import BookingService, retry_on_conflict
from app.services.status_projector import project

api_booking_bp = Blueprint("api_booking", __name__)


@api_booking_bp.post("")
@role_required("user")
def create_booking():
    payload = json_payload()
    address = payload.get("address") or {}
    if not isinstance(address, dict):
        raise ValidationError("address must be an object.")
    booking = BookingService.create_booking(
        user_id=current_user.id,
        base_service_fee=payload.get("base_service_fee"),
        distance_km=payload.get("distance_km", 0),
        scheduled_date=payload.get("scheduled_date"),
        scheduled_time=payload.get("scheduled_time"),
        address=address,
        purpose=payload.get("purpose"),
        notes=payload.get("notes"),
    )
    return booking_response(booking, 201)


@api_booking_bp.get("/me")
@login_required
def my_bookings():
    rows = BookingService.list_for(actor(), status=request.args.get("status"))
    return jsonify([project(b, current_user.role) for b in rows])


@api_booking_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id):
    booking = BookingService.load(booking_id)
    BookingService.ensure_can_view(booking, actor())
    return booking_response(booking)


@api_booking_bp.post("/<int:booking_id>/accept")
@role_required("vendor")
def accept_booking(booking_id):
    booking = retry_on_conflict(lambda: BookingService.accept_booking(booking_id, current_user.id))
    return booking_response(booking)


@api_booking_bp.post("/<int:booking_id>/reject")
@role_required("vendor")
def reject_booking(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: BookingService.reject_booking(booking_id, current_user.id, payload.get("reason"))
    )
    return jsonify({"ok": True, "booking_id": booking.id, "status": booking.status})


@api_booking_bp.post("/<int:booking_id>/visit")
@role_required("vendor")
def mark_visited(booking_id):
    booking = retry_on_conflict(lambda: BookingService.mark_visited(booking_id, current_user.id))
    return booking_response(booking)


@api_booking_bp.post("/<int:booking_id>/report")
@role_required("vendor")
def upload_report(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: BookingService.upload_report(
            booking_id,
            current_user.id,
            water_found=payload.get("water_found"),
            images=payload.get("images"),
            report_file=payload.get("report_file"),
            machine_readings=payload.get("machine_readings"),
            notes=payload.get("notes"),
        )
    )
    return booking_response(booking)


@api_booking_bp.post("/<int:booking_id>/travel-charges")
@role_required("vendor")
def request_travel_charges(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: BookingService.request_travel_charges(
            booking_id,
            current_user.id,
            amount=payload.get("amount"),
            reason=payload.get("reason"),
        )
    )
    return booking_response(booking)


@api_booking_bp.post("/<int:booking_id>/borewell-result")
@role_required("user", "vendor")
def upload_borewell_result(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: BookingService.upload_borewell_result(
            booking_id,
            actor(),
            status=payload.get("status"),
            images=payload.get("images"),
        )
    )
    return booking_response(booking)


@api_booking_bp.post("/<int:booking_id>/cancel")
@role_required("user", "admin")
def cancel_booking(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(lambda: BookingService.cancel_booking(booking_id, actor(), payload.get("reason")))
    return booking_response(booking)
