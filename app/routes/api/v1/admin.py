from flask import Blueprint, jsonify, request
from flask_login import current_user

from app.decorators import role_required
from app.routes.api.v1.helpers import actor, booking_response, json_payload, page_args
from app.services import (
    ApprovalService,
    BookingService,
    PlatformService,
    SettlementService,
    retry_on_conflict,
)
from app.services.status_projector import project

api_admin_bp = Blueprint("api_admin", __name__)


@api_admin_bp.before_request
@role_required("admin")
def admin_only():
    return None


@api_admin_bp.get("/bookings")
def list_bookings():
    rows = BookingService.list_for(actor(), status=request.args.get("status"))
    return jsonify([project(b, "admin") for b in rows])


@api_admin_bp.post("/bookings/<int:booking_id>/assign")
def assign_vendor(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: BookingService.assign_vendor(booking_id, payload.get("vendor_id"), admin_id=current_user.id)
    )
    return booking_response(booking)


@api_admin_bp.post("/bookings/<int:booking_id>/report/approve")
def approve_report(booking_id):
    booking = retry_on_conflict(lambda: ApprovalService.approve_report(booking_id, current_user.id))
    return booking_response(booking)


@api_admin_bp.post("/bookings/<int:booking_id>/report/reject")
def reject_report(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: ApprovalService.reject_report(booking_id, current_user.id, payload.get("reason"))
    )
    return booking_response(booking)


@api_admin_bp.post("/bookings/<int:booking_id>/travel-charges/approve")
def approve_travel_charges(booking_id):
    booking = retry_on_conflict(lambda: ApprovalService.approve_travel_charges(booking_id, current_user.id))
    return booking_response(booking)


@api_admin_bp.post("/bookings/<int:booking_id>/travel-charges/reject")
def reject_travel_charges(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: ApprovalService.reject_travel_charges(booking_id, current_user.id, payload.get("reason"))
    )
    return booking_response(booking)


@api_admin_bp.post("/bookings/<int:booking_id>/travel-charges/pay")
def pay_travel_charges(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: ApprovalService.pay_travel_charges(
            booking_id, current_user.id, gateway_reference=payload.get("gateway_reference")
        )
    )
    return booking_response(booking)


@api_admin_bp.post("/bookings/<int:booking_id>/borewell-result/approve")
def approve_borewell_result(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: ApprovalService.approve_borewell_result(booking_id, current_user.id, payload.get("approved"))
    )
    return booking_response(booking)


@api_admin_bp.post("/bookings/<int:booking_id>/installments/first")
def pay_first_installment(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: SettlementService.pay_first_installment(
            booking_id, current_user.id, gateway_reference=payload.get("gateway_reference")
        )
    )
    return booking_response(booking)


@api_admin_bp.post("/bookings/<int:booking_id>/settlement")
@api_admin_bp.post("/bookings/<int:booking_id>/installments/second")
def process_final_settlement(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: SettlementService.process_final_settlement(
            booking_id,
            current_user.id,
            incentive=payload.get("incentive"),
            penalty=payload.get("penalty"),
            refund_amount=payload.get("refund_amount"),
        )
    )
    return booking_response(booking)


@api_admin_bp.post("/bookings/<int:booking_id>/reprice")
def reprice_booking(booking_id):
    payload = json_payload()
    booking = retry_on_conflict(
        lambda: BookingService.reprice_booking(
            booking_id,
            current_user.id,
            distance_km=payload.get("distance_km"),
            base_service_fee=payload.get("base_service_fee"),
        )
    )
    return booking_response(booking)


@api_admin_bp.get("/queues/<name>")
def queue(name):
    page, per_page = page_args()
    result = ApprovalService.queue(name, page=page, per_page=per_page)
    return jsonify(
        {
            "queue": name,
            "page": result.page,
            "per_page": result.per_page,
            "total": result.total,
            "items": [project(b, "admin") for b in result.items],
        }
    )


@api_admin_bp.put("/settings/pricing")
def update_pricing():
    config = PlatformService.set_pricing_config(json_payload(), updated_by_id=current_user.id)
    return jsonify(config.as_dict())
