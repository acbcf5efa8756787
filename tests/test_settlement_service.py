from decimal import Decimal

import pytest

from app.errors import AlreadySettled, AmountOutOfRange, BookingClosed, InvalidTransition, ValidationError
from app.models import Notification, Payment, VendorEarning
from app.services import ApprovalService, BookingService, SettlementService
from app.services.booking_state import BookingStatus
from app.services.settlement_service import calculate_settlement

TOTAL = Decimal("1298.00")
REMAINING = Decimal("649.00")


class TestCalculateSettlement:
    """Pure arithmetic, no database."""

    def test_success_adds_incentive(self):
        result = calculate_settlement(TOTAL, REMAINING, "SUCCESS", incentive=200)

        assert result.base_share == Decimal("649.00")
        assert result.vendor_payout == Decimal("849.00")
        assert result.incentive == Decimal("200.00")
        assert result.penalty is None
        assert result.refund_amount is None
        assert result.user_refund == 0

    def test_success_without_incentive(self):
        result = calculate_settlement(TOTAL, REMAINING, "SUCCESS")
        assert result.vendor_payout == Decimal("649.00")
        assert result.incentive == Decimal("0.00")

    def test_failed_subtracts_penalty(self):
        result = calculate_settlement(TOTAL, REMAINING, "FAILED", penalty=100, refund_amount=649)

        assert result.vendor_payout == Decimal("549.00")
        assert result.refund_amount == Decimal("649.00")
        assert result.refund_clamped is False
        assert result.incentive is None

    def test_refund_is_clamped_to_remaining(self):
        result = calculate_settlement(TOTAL, REMAINING, "FAILED", penalty=100, refund_amount=900)

        assert result.refund_amount == REMAINING
        assert result.refund_clamped is True

    def test_missing_refund_defaults_to_remaining(self):
        assert calculate_settlement(TOTAL, REMAINING, "FAILED").refund_amount == REMAINING

    def test_explicit_zero_refund(self):
        result = calculate_settlement(TOTAL, REMAINING, "FAILED", refund_amount=0)
        assert result.refund_amount == Decimal("0.00")
        assert result.user_refund == 0

    def test_penalty_equal_to_share_pays_nothing(self):
        result = calculate_settlement(TOTAL, REMAINING, "FAILED", penalty="649")
        assert result.vendor_payout == Decimal("0.00")

    def test_penalty_above_share_is_out_of_range(self):
        with pytest.raises(AmountOutOfRange):
            calculate_settlement(TOTAL, REMAINING, "FAILED", penalty="649.01")

    @pytest.mark.parametrize(
        "outcome, kwargs",
        [
            ("SUCCESS", {"incentive": -1}),
            ("FAILED", {"penalty": -1}),
            ("FAILED", {"refund_amount": -5}),
        ],
    )
    def test_negative_amounts_rejected(self, outcome, kwargs):
        with pytest.raises(ValidationError):
            calculate_settlement(TOTAL, REMAINING, outcome, **kwargs)

    def test_pairs_cannot_be_mixed(self):
        with pytest.raises(ValidationError):
            calculate_settlement(TOTAL, REMAINING, "SUCCESS", penalty=50)
        with pytest.raises(ValidationError):
            calculate_settlement(TOTAL, REMAINING, "SUCCESS", refund_amount=50)
        with pytest.raises(ValidationError):
            calculate_settlement(TOTAL, REMAINING, "FAILED", incentive=50)

    def test_unapproved_outcome(self):
        with pytest.raises(InvalidTransition):
            calculate_settlement(TOTAL, REMAINING, None)


class TestProcessFinalSettlement:
    def test_success_completes_booking(self, lifecycle, admin, vendor):
        booking_id = lifecycle.to(BookingStatus.ADMIN_APPROVED, outcome="SUCCESS")
        booking = SettlementService.process_final_settlement(booking_id, admin.id, incentive=200)

        assert booking.status == BookingStatus.COMPLETED
        assert booking.final_settlement_at is not None
        assert booking.completed_at is not None
        assert booking.settlement_status == "COMPLETED"
        assert booking.settlement_amount == Decimal("849.00")
        assert booking.settlement_incentive == Decimal("200.00")
        assert booking.settlement_penalty is None
        assert booking.refund_amount is None

        earning = VendorEarning.query.filter_by(booking_id=booking_id).one()
        assert earning.vendor_id == vendor.id
        assert earning.net_amount == Decimal("849.00")
        assert Payment.query.filter_by(booking_id=booking_id, payment_type="SETTLEMENT").count() == 1
        assert Payment.query.filter_by(booking_id=booking_id, payment_type="REFUND").count() == 0

    def test_failed_records_penalty_and_clamped_refund(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.ADMIN_APPROVED, outcome="FAILED")
        booking = SettlementService.process_final_settlement(booking_id, admin.id, penalty=100, refund_amount=900)

        assert booking.status == BookingStatus.COMPLETED
        assert booking.settlement_amount == Decimal("549.00")
        assert booking.settlement_penalty == Decimal("100.00")
        assert booking.settlement_incentive is None
        assert booking.refund_amount == Decimal("649.00")
        refund = Payment.query.filter_by(booking_id=booking_id, payment_type="REFUND").one()
        assert refund.amount == Decimal("649.00")

    @pytest.mark.parametrize(
        "outcome, kwargs",
        [("SUCCESS", {"incentive": 50}), ("FAILED", {"penalty": 10, "refund_amount": 100})],
    )
    def test_exactly_one_pair_is_populated(self, lifecycle, admin, outcome, kwargs):
        booking_id = lifecycle.to(BookingStatus.ADMIN_APPROVED, outcome=outcome)
        booking = SettlementService.process_final_settlement(booking_id, admin.id, **kwargs)

        incentive_set = booking.settlement_incentive is not None
        failure_pair_set = booking.settlement_penalty is not None and booking.refund_amount is not None
        assert incentive_set != failure_pair_set

    def test_second_run_is_already_settled(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.ADMIN_APPROVED)
        SettlementService.process_final_settlement(booking_id, admin.id, incentive=200)

        with pytest.raises(AlreadySettled):
            SettlementService.process_final_settlement(booking_id, admin.id, incentive=500)

        booking = BookingService.load(booking_id)
        assert booking.settlement_amount == Decimal("849.00")
        assert booking.settlement_incentive == Decimal("200.00")
        assert Payment.query.filter_by(booking_id=booking_id, payment_type="SETTLEMENT").count() == 1

    def test_rejected_settlement_writes_nothing(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.ADMIN_APPROVED, outcome="FAILED")
        with pytest.raises(AmountOutOfRange):
            SettlementService.process_final_settlement(booking_id, admin.id, penalty=700)

        booking = BookingService.load(booking_id)
        assert booking.status == BookingStatus.ADMIN_APPROVED
        assert booking.settlement_status == "PENDING"
        assert VendorEarning.query.filter_by(booking_id=booking_id).count() == 0

    def test_requires_admin_approval(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.BOREWELL_UPLOADED)
        with pytest.raises(InvalidTransition):
            SettlementService.process_final_settlement(booking_id, admin.id)

    def test_cancelled_booking_is_closed(self, lifecycle, admin, user):
        booking_id = lifecycle.to(BookingStatus.ACCEPTED)
        BookingService.cancel_booking(booking_id, user)
        with pytest.raises(BookingClosed):
            SettlementService.process_final_settlement(booking_id, admin.id)


class TestFirstInstallment:
    def test_requires_approved_report(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        with pytest.raises(InvalidTransition):
            SettlementService.pay_first_installment(booking_id, admin.id)
        assert Payment.query.filter_by(booking_id=booking_id, payment_type="FIRST_INSTALLMENT").count() == 0

    def test_pays_half_without_moving_status(self, lifecycle, admin, vendor):
        booking_id = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        ApprovalService.approve_report(booking_id, admin.id)

        booking = SettlementService.pay_first_installment(booking_id, admin.id)

        assert booking.status == BookingStatus.AWAITING_PAYMENT
        assert booking.first_installment_paid is True
        assert booking.first_installment_amount == Decimal("649.00")
        assert booking.first_installment_paid_by_id == admin.id
        assert booking.first_installment_paid_at is not None
        row = Payment.query.filter_by(booking_id=booking_id, payment_type="FIRST_INSTALLMENT").one()
        assert row.amount == Decimal("649.00")
        assert Notification.query.filter_by(user_id=vendor.id, title="First installment paid").count() == 1

    def test_is_paid_once(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        ApprovalService.approve_report(booking_id, admin.id)
        SettlementService.pay_first_installment(booking_id, admin.id)

        with pytest.raises(InvalidTransition):
            SettlementService.pay_first_installment(booking_id, admin.id)
        assert Payment.query.filter_by(booking_id=booking_id, payment_type="FIRST_INSTALLMENT").count() == 1

    def test_cancelled_booking_is_closed(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        ApprovalService.approve_report(booking_id, admin.id)
        BookingService.cancel_booking(booking_id, admin)
        with pytest.raises(BookingClosed):
            SettlementService.pay_first_installment(booking_id, admin.id)

    def test_final_settlement_still_pays_second_half(self, lifecycle, admin):
        booking_id = lifecycle.to(BookingStatus.AWAITING_PAYMENT)
        ApprovalService.approve_report(booking_id, admin.id)
        SettlementService.pay_first_installment(booking_id, admin.id)
        lifecycle.to(BookingStatus.ADMIN_APPROVED, booking_id=booking_id)

        booking = SettlementService.process_final_settlement(booking_id, admin.id)

        assert booking.settlement_amount == Decimal("649.00")
        assert ApprovalService.queue("first-installments").total == 0
        kinds = sorted(p.payment_type for p in Payment.query.filter_by(booking_id=booking_id))
        assert kinds == ["FIRST_INSTALLMENT", "REMAINING", "SETTLEMENT"]
