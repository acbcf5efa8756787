"""
Per-role views of a booking.

Nothing here is persisted: the user and vendor statuses are recomputed from
the canonical status and the payment/report/borewell flags on every read.
"""

from app.services.booking_state import REPORT_PENDING_PAYMENT_STATUSES, BookingStatus, has_reached

ROLE_USER = "user"
ROLE_VENDOR = "vendor"
ROLE_ADMIN = "admin"


def _money(value):
    return str(value) if value is not None else None


def _iso(value):
    return value.isoformat() if value is not None else None


def user_status(booking):
    status = booking.status
    if status in REPORT_PENDING_PAYMENT_STATUSES and not booking.remaining_paid:
        return BookingStatus.AWAITING_PAYMENT
    # A vendor-submitted result stays the user's own step until they acknowledge it.
    if (
        status == BookingStatus.BOREWELL_UPLOADED
        and booking.borewell_uploaded_by_role == ROLE_VENDOR
        and booking.borewell_user_confirmed_at is None
    ):
        return BookingStatus.PAYMENT_SUCCESS
    return status


def vendor_status(booking):
    return booking.status


def settlement_visible_to_vendor(booking):
    return has_reached(booking.status, BookingStatus.ADMIN_APPROVED)


def _payment_view(booking, include_settlement=True, include_refund=True):
    data = {
        "base_service_fee": _money(booking.base_service_fee),
        "distance_km": _money(booking.distance_km),
        "travel_charges": _money(booking.travel_charges),
        "subtotal": _money(booking.subtotal),
        "gst": _money(booking.gst),
        "total_amount": _money(booking.total_amount),
        "advance_amount": _money(booking.advance_amount),
        "advance_paid": bool(booking.advance_paid),
        "remaining_amount": _money(booking.remaining_amount),
        "remaining_paid": bool(booking.remaining_paid),
        "first_installment": {
            "amount": _money(booking.first_installment_amount),
            "paid": bool(booking.first_installment_paid),
            "paid_at": _iso(booking.first_installment_paid_at),
        },
    }
    if include_refund:
        data["refund_amount"] = _money(booking.refund_amount)
        data["refunded_at"] = _iso(booking.refunded_at)
    if include_settlement:
        data["vendor_settlement"] = {
            "status": booking.settlement_status,
            "amount": _money(booking.settlement_amount),
            "incentive": _money(booking.settlement_incentive),
            "penalty": _money(booking.settlement_penalty),
            "travel_charges": _money(booking.settlement_travel_charges),
            "settled_at": _iso(booking.settled_at),
        }
    return data


def _report_view(booking):
    if not booking.has_report:
        return None
    return {
        "water_found": booking.report_water_found,
        "images": list(booking.report_images or []),
        "report_file": booking.report_file,
        "machine_readings": booking.report_machine_readings,
        "notes": booking.report_notes,
        "uploaded_at": _iso(booking.report_uploaded_at),
        "approved_at": _iso(booking.report_approved_at),
        "rejected_at": _iso(booking.report_rejected_at),
        "rejection_reason": booking.report_rejection_reason,
    }


def _borewell_view(booking):
    if not booking.has_borewell_result:
        return None
    return {
        "status": booking.borewell_status,
        "submitted_status": booking.borewell_submitted_status,
        "images": list(booking.borewell_images or []),
        "uploaded_by": booking.borewell_uploaded_by_role,
        "uploaded_at": _iso(booking.borewell_uploaded_at),
        "approved_at": _iso(booking.borewell_approved_at),
        "user_status": booking.borewell_user_status,
        "user_confirmed_at": _iso(booking.borewell_user_confirmed_at),
    }


def _travel_request_view(booking):
    if booking.travel_request_status is None:
        return None
    return {
        "amount": _money(booking.travel_request_amount),
        "reason": booking.travel_request_reason,
        "status": booking.travel_request_status,
        "rejection_reason": booking.travel_request_rejection_reason,
        "requested_at": _iso(booking.travel_requested_at),
        "reviewed_at": _iso(booking.travel_reviewed_at),
        "paid": bool(booking.travel_paid),
        "paid_at": _iso(booking.travel_paid_at),
    }


def _timeline(booking):
    return {
        "created_at": _iso(booking.created_at),
        "assigned_at": _iso(booking.assigned_at),
        "accepted_at": _iso(booking.accepted_at),
        "visited_at": _iso(booking.visited_at),
        "report_uploaded_at": _iso(booking.report_first_uploaded_at),
        "awaiting_payment_at": _iso(booking.awaiting_payment_at),
        "payment_success_at": _iso(booking.payment_success_at),
        "borewell_uploaded_at": _iso(booking.borewell_uploaded_at),
        "admin_approved_at": _iso(booking.admin_approved_at),
        "final_settlement_at": _iso(booking.final_settlement_at),
        "completed_at": _iso(booking.completed_at),
        "cancelled_at": _iso(booking.cancelled_at),
    }


def project(booking, role):
    """Serializable view of ``booking`` for a user, vendor or admin reader."""
    view = {
        "id": booking.id,
        "version": booking.version,
        "user_id": booking.user_id,
        "vendor_id": booking.vendor_id,
        "scheduled_date": _iso(booking.scheduled_date),
        "scheduled_time": booking.scheduled_time,
        "address": {
            "street": booking.street,
            "city": booking.city,
            "state": booking.state,
            "pincode": booking.pincode,
            "village": booking.village,
            "district": booking.district,
            "landmark": booking.landmark,
        },
        "purpose": booking.purpose,
        "notes": booking.notes,
        "borewell_result": _borewell_view(booking),
        "timeline": _timeline(booking),
    }
    if booking.status == BookingStatus.CANCELLED:
        view["cancelled_by"] = booking.cancelled_by
        view["cancellation_reason"] = booking.cancellation_reason

    if role == ROLE_USER:
        view["status"] = user_status(booking)
        view["payment"] = _payment_view(booking, include_settlement=False)
        view["report"] = _report_view(booking) if booking.remaining_paid else None
        view["report_available"] = booking.has_report
        return view

    if role == ROLE_VENDOR:
        visible = settlement_visible_to_vendor(booking)
        view["status"] = vendor_status(booking)
        view["payment"] = _payment_view(booking, include_settlement=visible, include_refund=visible)
        view["report"] = _report_view(booking)
        view["travel_charges_request"] = _travel_request_view(booking)
        return view

    view["status"] = booking.status
    view["user_status"] = user_status(booking)
    view["vendor_status"] = vendor_status(booking)
    view["payment"] = _payment_view(booking)
    view["report"] = _report_view(booking)
    view["travel_charges_request"] = _travel_request_view(booking)
    view["report_approved_by_id"] = booking.report_approved_by_id
    view["borewell_approved_by_id"] = booking.borewell_approved_by_id
    view["vendor_rejection"] = (
        {
            "reason": booking.vendor_rejection_reason,
            "rejected_at": _iso(booking.vendor_rejected_at),
            "vendor_id": booking.vendor_rejected_by_id,
        }
        if booking.vendor_rejected_at
        else None
    )
    return view
