from app.errors import InvalidTransition, NotFound, ValidationError
from app.models import Booking
from app.models.base import utcnow
from app.services.booking_service import BookingService, booking_action, clean_reason
from app.services.booking_state import (
    REPORT_PENDING_PAYMENT_STATUSES,
    TERMINAL_STATUSES,
    BookingStatus,
    ensure_open,
    ensure_status,
)
from app.services.notification_service import NotificationService

QUEUES = {
    "reports": lambda: Booking.query.filter(
        Booking.report_uploaded_at.isnot(None),
        Booking.report_approved_at.is_(None),
        Booking.report_rejected_at.is_(None),
        Booking.status.notin_(TERMINAL_STATUSES),
    ).order_by(Booking.report_uploaded_at.asc()),
    "travel-charges": lambda: Booking.query.filter(
        Booking.travel_request_status == "PENDING",
        Booking.status.notin_(TERMINAL_STATUSES),
    ).order_by(Booking.travel_requested_at.asc()),
    "borewell-results": lambda: Booking.query.filter(
        Booking.status == BookingStatus.BOREWELL_UPLOADED,
    ).order_by(Booking.borewell_uploaded_at.asc()),
    "first-installments": lambda: Booking.query.filter(
        Booking.report_approved_at.isnot(None),
        Booking.first_installment_paid.is_(False),
        Booking.status.notin_(TERMINAL_STATUSES),
    ).order_by(Booking.report_approved_at.asc()),
    "settlements": lambda: Booking.query.filter(
        Booking.status == BookingStatus.ADMIN_APPROVED,
        Booking.settlement_status == "PENDING",
    ).order_by(Booking.admin_approved_at.asc()),
}


class ApprovalService:
    @staticmethod
    def _ensure_report_pending(booking):
        if not booking.has_report:
            raise InvalidTransition(f"Booking #{booking.id} has no report to review.")
        if booking.report_approved_at is not None:
            raise InvalidTransition("Report has already been approved.")
        if booking.report_rejected_at is not None:
            raise InvalidTransition("Report has already been rejected.")

    @staticmethod
    @booking_action
    def approve_report(booking_id, admin_id):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        ApprovalService._ensure_report_pending(booking)

        booking.report_approved_at = utcnow()
        booking.report_approved_by_id = admin_id
        NotificationService.push(
            booking.vendor_id,
            "Report approved",
            f"Your report for booking #{booking.id} was approved.",
            booking_id=booking.id,
        )
        return BookingService.commit(booking)

    @staticmethod
    @booking_action
    def reject_report(booking_id, admin_id, reason):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        reason = clean_reason(reason)
        ApprovalService._ensure_report_pending(booking)
        ensure_status(booking, *REPORT_PENDING_PAYMENT_STATUSES)

        booking.report_rejected_at = utcnow()
        booking.report_rejected_by_id = admin_id
        booking.report_rejection_reason = reason
        move = BookingService.move(booking, BookingStatus.VISITED)
        NotificationService.push(
            booking.vendor_id,
            "Report rejected",
            f"Report for booking #{booking.id} was rejected: {reason}. Please upload a new report.",
            booking_id=booking.id,
        )
        return BookingService.commit(booking, move)

    @staticmethod
    def _ensure_travel_pending(booking):
        if booking.travel_request_status != "PENDING":
            raise InvalidTransition("No pending travel charges request for this booking.")

    @staticmethod
    @booking_action
    def approve_travel_charges(booking_id, admin_id):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        ApprovalService._ensure_travel_pending(booking)

        booking.travel_request_status = "APPROVED"
        booking.travel_reviewed_at = utcnow()
        booking.travel_reviewed_by_id = admin_id
        booking.settlement_travel_charges = booking.travel_request_amount
        NotificationService.push(
            booking.vendor_id,
            "Travel charges approved",
            f"Travel charges of {booking.travel_request_amount} for booking #{booking.id} were approved.",
            booking_id=booking.id,
        )
        return BookingService.commit(booking)

    @staticmethod
    @booking_action
    def reject_travel_charges(booking_id, admin_id, reason):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        reason = clean_reason(reason)
        ApprovalService._ensure_travel_pending(booking)

        booking.travel_request_status = "REJECTED"
        booking.travel_request_rejection_reason = reason
        booking.travel_reviewed_at = utcnow()
        booking.travel_reviewed_by_id = admin_id
        NotificationService.push(
            booking.vendor_id,
            "Travel charges rejected",
            f"Travel charges for booking #{booking.id} were rejected: {reason}",
            booking_id=booking.id,
        )
        return BookingService.commit(booking)

    @staticmethod
    @booking_action
    def pay_travel_charges(booking_id, admin_id, gateway_reference=None):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        if booking.travel_request_status != "APPROVED":
            raise InvalidTransition("Travel charges must be approved before payment.")
        if booking.travel_paid:
            raise InvalidTransition("Travel charges have already been paid.")

        booking.travel_paid = True
        booking.travel_paid_at = utcnow()
        payment = BookingService.record_payment(
            booking,
            "TRAVEL_CHARGES",
            booking.travel_request_amount,
            gateway_reference=gateway_reference,
            description=f"Travel charges paid by admin {admin_id} for booking #{booking.id}",
        )
        NotificationService.push(
            booking.vendor_id,
            "Travel charges paid",
            f"Travel charges of {booking.travel_request_amount} were paid. Receipt #{payment.receipt_number}.",
            booking_id=booking.id,
        )
        return BookingService.commit(booking)

    @staticmethod
    @booking_action
    def approve_borewell_result(booking_id, admin_id, approved):
        """Confirm (or override) the submitted borewell outcome.

        ``approved=True`` records SUCCESS, ``False`` records FAILED. Repeating the
        same decision returns the booking untouched; a contradicting repeat fails.
        """
        if not isinstance(approved, bool):
            raise ValidationError("approved must be true or false.")
        decision = "SUCCESS" if approved else "FAILED"

        booking = BookingService.load(booking_id)
        if booking.borewell_approved_at is not None:
            if booking.borewell_status == decision:
                return booking
            ensure_open(booking)
            raise InvalidTransition(f"Borewell result was already approved as {booking.borewell_status}.")
        ensure_status(booking, BookingStatus.BOREWELL_UPLOADED)

        booking.borewell_status = decision
        booking.borewell_approved_at = utcnow()
        booking.borewell_approved_by_id = admin_id
        move = BookingService.move(booking, BookingStatus.ADMIN_APPROVED)
        for party in (booking.user_id, booking.vendor_id):
            NotificationService.push(
                party,
                "Borewell result approved",
                f"Borewell result for booking #{booking.id} was confirmed as {decision}.",
                booking_id=booking.id,
            )
        return BookingService.commit(booking, move)

    @staticmethod
    def queue(name, page=1, per_page=20):
        build = QUEUES.get(name)
        if build is None:
            raise NotFound(f"Unknown queue '{name}'.")
        per_page = max(1, min(int(per_page), 100))
        return build().paginate(page=max(1, int(page)), per_page=per_page, error_out=False)
