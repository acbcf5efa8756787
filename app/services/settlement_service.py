"""
Vendor payouts.

The vendor is paid in two installments. The first, half the booking total,
is released once the survey report is approved. The second is the final
settlement: its base share is again half the total. A SUCCESS result adds the
admin's incentive to it; a FAILED result subtracts a penalty (never more than
the share) and may refund the user up to the remaining amount. The payout,
ledger rows, earning row and the ADMIN_APPROVED -> FINAL_SETTLEMENT -> COMPLETED
moves are committed together.
"""

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from app.errors import AlreadySettled, AmountOutOfRange, InvalidTransition, ValidationError
from app.extensions import db
from app.models import VendorEarning
from app.models.base import utcnow
from app.services.booking_service import BookingService, booking_action
from app.services.booking_state import BookingStatus, ensure_open, ensure_status, has_reached
from app.services.notification_service import NotificationService
from app.services.pricing_engine import ADVANCE_RATIO, money, to_decimal

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class SettlementResult:
    outcome: str
    base_share: Decimal
    vendor_payout: Decimal
    incentive: Decimal = None
    penalty: Decimal = None
    refund_amount: Decimal = None
    refund_clamped: bool = False

    @property
    def user_refund(self):
        return self.refund_amount or ZERO


def _optional_amount(value, label):
    if value is None or value == "":
        return None
    return money(to_decimal(value, label))


def calculate_settlement(total_amount, remaining_amount, outcome, incentive=None, penalty=None, refund_amount=None):
    """Pure settlement arithmetic; raises before anything is written."""
    incentive = _optional_amount(incentive, "Incentive")
    penalty = _optional_amount(penalty, "Penalty")
    refund_amount = _optional_amount(refund_amount, "Refund amount")
    base_share = money(Decimal(str(total_amount)) * ADVANCE_RATIO)

    if outcome == "SUCCESS":
        if penalty or refund_amount:
            raise ValidationError("Penalty and refund only apply to a failed borewell.")
        incentive = incentive or ZERO
        return SettlementResult(
            outcome=outcome,
            base_share=base_share,
            vendor_payout=money(base_share + incentive),
            incentive=incentive,
        )

    if outcome == "FAILED":
        if incentive:
            raise ValidationError("Incentive only applies to a successful borewell.")
        penalty = penalty or ZERO
        if penalty > base_share:
            raise AmountOutOfRange(f"Penalty cannot exceed the vendor base share of {base_share}.")
        remaining = money(Decimal(str(remaining_amount)))
        # No amount entered means the full remaining payment goes back to the user.
        requested_refund = remaining if refund_amount is None else refund_amount
        refund = min(requested_refund, remaining)
        return SettlementResult(
            outcome=outcome,
            base_share=base_share,
            vendor_payout=max(ZERO, money(base_share - penalty)),
            penalty=penalty,
            refund_amount=refund,
            refund_clamped=refund != requested_refund,
        )

    raise InvalidTransition("Borewell result must be approved before settlement.")


class SettlementService:
    @staticmethod
    @booking_action
    def pay_first_installment(booking_id, admin_id, gateway_reference=None):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        if not has_reached(booking.status, BookingStatus.REPORT_UPLOADED) or not booking.has_report:
            raise InvalidTransition("Report must be uploaded before paying the first installment.")
        if booking.report_approved_at is None:
            raise InvalidTransition("Report must be approved before paying the first installment.")
        if booking.first_installment_paid:
            raise InvalidTransition("First installment has already been paid.")

        amount = money(Decimal(str(booking.total_amount)) * ADVANCE_RATIO)
        booking.first_installment_amount = amount
        booking.first_installment_paid = True
        booking.first_installment_paid_at = utcnow()
        booking.first_installment_paid_by_id = admin_id
        payment = BookingService.record_payment(
            booking,
            "FIRST_INSTALLMENT",
            amount,
            gateway_reference=gateway_reference,
            description=f"First installment for booking #{booking.id}",
        )
        NotificationService.push(
            booking.vendor_id,
            "First installment paid",
            f"First installment of {amount} for booking #{booking.id} was paid. Receipt #{payment.receipt_number}.",
            booking_id=booking.id,
        )
        BookingService.commit(booking)
        current_app.logger.info("Booking %s: first installment %s paid by admin %s", booking.id, amount, admin_id)
        return booking

    @staticmethod
    @booking_action
    def process_final_settlement(booking_id, admin_id, incentive=None, penalty=None, refund_amount=None):
        booking = BookingService.load(booking_id)
        if booking.settlement_status != "PENDING":
            raise AlreadySettled(f"Booking #{booking.id} has already been settled.")
        ensure_status(booking, BookingStatus.ADMIN_APPROVED)
        if booking.borewell_approved_at is None:
            raise InvalidTransition("Borewell result must be approved before settlement.")

        result = calculate_settlement(
            booking.total_amount,
            booking.remaining_amount,
            booking.borewell_status,
            incentive=incentive,
            penalty=penalty,
            refund_amount=refund_amount,
        )
        if result.refund_clamped:
            current_app.logger.warning(
                "Booking %s: refund request clamped to remaining amount %s", booking.id, result.refund_amount
            )

        now = utcnow()
        booking.settlement_status = "COMPLETED"
        booking.settlement_amount = result.vendor_payout
        booking.settlement_incentive = result.incentive
        booking.settlement_penalty = result.penalty
        booking.settled_at = now
        booking.settled_by_id = admin_id
        booking.refund_amount = result.refund_amount
        if result.user_refund > 0:
            booking.refunded_at = now

        settling = BookingService.move(booking, BookingStatus.FINAL_SETTLEMENT)
        BookingService.record_payment(
            booking,
            "SETTLEMENT",
            result.vendor_payout,
            description=SettlementService.describe(booking, result),
        )
        if result.user_refund > 0:
            BookingService.record_payment(
                booking,
                "REFUND",
                result.user_refund,
                description=f"Refund for failed borewell, booking #{booking.id}",
            )
        db.session.add(
            VendorEarning(
                vendor_id=booking.vendor_id,
                booking_id=booking.id,
                base_share=result.base_share,
                incentive=result.incentive or ZERO,
                penalty=result.penalty or ZERO,
                net_amount=result.vendor_payout,
            )
        )
        completed = BookingService.move(booking, BookingStatus.COMPLETED)

        NotificationService.push(
            booking.vendor_id,
            "Settlement processed",
            f"Settlement of {result.vendor_payout} for booking #{booking.id} was processed.",
            booking_id=booking.id,
        )
        message = f"Booking #{booking.id} is complete."
        if result.user_refund > 0:
            message = f"{message} A refund of {result.user_refund} was issued."
        NotificationService.push(booking.user_id, "Booking completed", message, booking_id=booking.id)
        return BookingService.commit(booking, settling, completed)

    @staticmethod
    def describe(booking, result):
        text = f"Final settlement for booking #{booking.id} - {result.outcome}"
        if result.incentive:
            text += f" + incentive {result.incentive}"
        if result.penalty:
            text += f" - penalty {result.penalty}"
        return text
