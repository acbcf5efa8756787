from decimal import Decimal

import pytest

from app.errors import BookingClosed, InvalidTransition, NotFound, ValidationError
from app.models import Payment
from app.services import ApprovalService, BookingService
from app.services.booking_state import BookingStatus


class TestReportApproval:
    def test_short_rejection_reason_fails(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        with pytest.raises(ValidationError):
            ApprovalService.reject_report(booking_id, admin.id, "bad")

        booking = BookingService.load(booking_id)
        assert booking.status == BookingStatus.AWAITING_PAYMENT
        assert booking.report_rejected_at is None

    def test_reason_is_trimmed_before_length_check(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        with pytest.raises(ValidationError):
            ApprovalService.reject_report(booking_id, admin.id, "   too short   ")

    def test_rejection_returns_booking_to_visited(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        first_upload = BookingService.load(booking_id).report_first_uploaded_at

        booking = ApprovalService.reject_report(booking_id, admin.id, "Readings are illegible")

        assert booking.status == BookingStatus.VISITED
        assert booking.report_rejection_reason == "Readings are illegible"
        assert booking.report_rejected_by_id == admin.id
        assert booking.report_uploaded_at is not None
        assert booking.report_first_uploaded_at == first_upload

    def test_fresh_upload_after_rejection_clears_review(self, lifecycle, admin, vendor):
        booking_id = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        ApprovalService.reject_report(booking_id, admin.id, "Readings are illegible")

        booking = BookingService.upload_report(booking_id, vendor.id, water_found=False, images=["retake.jpg"])

        assert booking.status == BookingStatus.AWAITING_PAYMENT
        assert booking.report_rejected_at is None
        assert booking.report_rejection_reason is None
        assert booking.report_images == ["retake.jpg"]

    def test_approval_does_not_move_status(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        booking = ApprovalService.approve_report(booking_id, admin.id)

        assert booking.status == BookingStatus.AWAITING_PAYMENT
        assert booking.report_approved_at is not None
        assert booking.remaining_paid is False

    def test_approval_is_one_shot(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        ApprovalService.approve_report(booking_id, admin.id)
        with pytest.raises(InvalidTransition):
            ApprovalService.reject_report(booking_id, admin.id, "Changed my mind about it")

    def test_no_report_to_review(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.VISITED)
        with pytest.raises(InvalidTransition):
            ApprovalService.approve_report(booking_id, admin.id)

    def test_cannot_reject_after_payment(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.PAYMENT_SUCCESS)
        with pytest.raises(InvalidTransition):
            ApprovalService.reject_report(booking_id, admin.id, "Readings are illegible")


class TestTravelChargesApproval:
    def _requested(self, lifecycle, vendor, status=BookingStatus.ACCEPTED):
        booking_id = lifecycle.to(status)
        BookingService.request_travel_charges(booking_id, vendor.id, "250", "Road closed, long detour")
        return booking_id

    def test_approve_then_pay(self, lifecycle, vendor, admin):
        booking_id = self._requested(lifecycle, vendor)
        booking = ApprovalService.approve_travel_charges(booking_id, admin.id)

        assert booking.travel_request_status == "APPROVED"
        assert booking.settlement_travel_charges == Decimal("250.00")
        assert booking.status == BookingStatus.ACCEPTED

        booking = ApprovalService.pay_travel_charges(booking_id, admin.id)
        assert booking.travel_paid is True
        assert Payment.query.filter_by(booking_id=booking_id, payment_type="TRAVEL_CHARGES").count() == 1
        with pytest.raises(InvalidTransition):
            ApprovalService.pay_travel_charges(booking_id, admin.id)

    def test_rejected_request_is_never_reversed(self, lifecycle, vendor, admin):
        booking_id = self._requested(lifecycle, vendor)
        ApprovalService.reject_travel_charges(booking_id, admin.id, "Distance already in price")

        with pytest.raises(InvalidTransition):
            ApprovalService.approve_travel_charges(booking_id, admin.id)
        with pytest.raises(InvalidTransition):
            ApprovalService.pay_travel_charges(booking_id, admin.id)
        assert BookingService.load(booking_id).travel_request_status == "REJECTED"

    def test_rejection_needs_reason(self, lifecycle, vendor, admin):
        booking_id = self._requested(lifecycle, vendor)
        with pytest.raises(ValidationError):
            ApprovalService.reject_travel_charges(booking_id, admin.id, "no")

    def test_runs_alongside_booking_progress(self, lifecycle, vendor, admin):
        booking_id = self._requested(lifecycle, vendor)
        lifecycle.to(BookingStatus.PAYMENT_SUCCESS, booking_id=booking_id)

        booking = ApprovalService.approve_travel_charges(booking_id, admin.id)
        assert booking.status == BookingStatus.PAYMENT_SUCCESS

    def test_cancellation_closes_pending_request(self, lifecycle, vendor, admin, user):
        booking_id = self._requested(lifecycle, vendor)
        BookingService.cancel_booking(booking_id, user)

        with pytest.raises(BookingClosed):
            ApprovalService.approve_travel_charges(booking_id, admin.id)


class TestBorewellApproval:
    def test_admin_can_override_submitted_value(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.BOREWELL_UPLOADED, outcome="SUCCESS")
        booking = ApprovalService.approve_borewell_result(booking_id, admin.id, False)

        assert booking.status == BookingStatus.ADMIN_APPROVED
        assert booking.borewell_status == "FAILED"
        assert booking.borewell_submitted_status == "SUCCESS"
        assert booking.borewell_approved_at is not None

    def test_same_decision_replay_is_a_no_op(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.ADMIN_APPROVED)
        version = BookingService.load(booking_id).version

        booking = ApprovalService.approve_borewell_result(booking_id, admin.id, True)

        assert booking.version == version
        assert booking.status == BookingStatus.ADMIN_APPROVED

    def test_contradicting_replay_fails(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.ADMIN_APPROVED)
        with pytest.raises(InvalidTransition):
            ApprovalService.approve_borewell_result(booking_id, admin.id, False)
        assert BookingService.load(booking_id).borewell_status == "SUCCESS"

    def test_requires_uploaded_result(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.PAYMENT_SUCCESS)
        with pytest.raises(InvalidTransition):
            ApprovalService.approve_borewell_result(booking_id, admin.id, True)

    def test_approved_must_be_boolean(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.BOREWELL_UPLOADED)
        with pytest.raises(ValidationError):
            ApprovalService.approve_borewell_result(booking_id, admin.id, "yes")

    def test_after_cancellation_is_closed(self, lifecycle, admin, user):
        booking_id = lifecycle.to(BookingStatus.PAYMENT_SUCCESS)
        BookingService.cancel_booking(booking_id, user)
        with pytest.raises(BookingClosed):
            ApprovalService.approve_borewell_result(booking_id, admin.id, True)


class TestQueues:
    def test_queues_list_waiting_bookings(self, lifecycle, vendor):
        reported = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        uploaded = lifecycle.to(BookingStatus.BOREWELL_UPLOADED)
        approved = lifecycle.to(BookingStatus.ADMIN_APPROVED)
        BookingService.request_travel_charges(reported, vendor.id, "90")

        # Unreviewed reports stay queued after payment; admins may still review them.
        assert {b.id for b in ApprovalService.queue("reports").items} == {reported, uploaded, approved}
        assert [b.id for b in ApprovalService.queue("travel-charges").items] == [reported]
        assert [b.id for b in ApprovalService.queue("borewell-results").items] == [uploaded]
        assert [b.id for b in ApprovalService.queue("settlements").items] == [approved]

    def test_unknown_queue(self, app):
        with pytest.raises(NotFound):
            ApprovalService.queue("disputes")
