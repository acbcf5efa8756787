from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from functools import wraps

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from app.errors import AppError, ConcurrencyConflict, Forbidden, InvalidTransition, NotFound, ValidationError
from app.extensions import db
from app.models import Booking, Payment, User
from app.models.base import utcnow
from app.services.booking_state import (
    CANCELLABLE_STATUSES,
    BookingStatus,
    ensure_open,
    ensure_status,
    transition,
)
from app.services.notification_service import NotificationService
from app.services.platform_service import PlatformService
from app.services.pricing_engine import compute_price, money, to_decimal

BOREWELL_OUTCOMES = {"SUCCESS", "FAILED"}
UPLOADER_POLICIES = {"user", "vendor", "any"}
ADDRESS_FIELDS = ("street", "city", "state", "pincode", "latitude", "longitude", "landmark", "village", "district")
MIN_REJECTION_REASON = 10


def booking_action(func):
    """Roll back a failed action; a lost version check becomes ConcurrencyConflict."""

    @wraps(func)
    def inner(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except StaleDataError as exc:
            db.session.rollback()
            raise ConcurrencyConflict("Booking was changed by another request. Reload and try again.") from exc
        except (AppError, SQLAlchemyError):
            db.session.rollback()
            raise

    return inner


def clean_reason(reason):
    text = (reason or "").strip()
    if len(text) < MIN_REJECTION_REASON:
        raise ValidationError(f"Rejection reason must be at least {MIN_REJECTION_REASON} characters.")
    return text


def retry_on_conflict(action, attempts=None):
    """Run ``action`` again from scratch while it loses the optimistic version race."""
    attempts = attempts or current_app.config.get("CONFLICT_RETRY_ATTEMPTS", 3)
    for attempt in range(1, attempts + 1):
        try:
            return action()
        except ConcurrencyConflict:
            if attempt >= attempts:
                raise
            current_app.logger.warning("Concurrency conflict, retrying action (%s/%s)", attempt, attempts)


class BookingService:
    @staticmethod
    def load(booking_id):
        # Always re-read persisted state; guards must never run against a cached row.
        booking = db.session.get(Booking, booking_id, populate_existing=True)
        if not booking:
            raise NotFound("Booking not found.")
        return booking

    @staticmethod
    def commit(booking, *moves):
        db.session.commit()
        for previous, current in moves:
            current_app.logger.info("Booking %s: %s -> %s", booking.id, previous, current)
        return booking

    @staticmethod
    def move(booking, target):
        return transition(booking, target), target

    @staticmethod
    def generate_receipt_number(payment):
        # Unique per ledger row: built from the flushed primary key.
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        return f"AQS-{today}-{payment.id:06d}"

    @staticmethod
    def record_payment(booking, payment_type, amount, gateway_reference=None, description=None):
        payment = Payment(
            booking_id=booking.id,
            payment_type=payment_type,
            amount=amount,
            gateway_reference=gateway_reference,
            user_id=booking.user_id,
            vendor_id=booking.vendor_id,
            description=description,
        )
        db.session.add(payment)
        db.session.flush()
        payment.receipt_number = BookingService.generate_receipt_number(payment)
        return payment

    @staticmethod
    def find_gateway_payment(booking, gateway_reference, payment_type):
        if not gateway_reference:
            return None
        payment = Payment.query.filter_by(gateway_reference=gateway_reference).first()
        if payment and (payment.booking_id != booking.id or payment.payment_type != payment_type):
            raise ValidationError("Gateway reference was already used for a different payment.")
        return payment

    @staticmethod
    def ensure_vendor(booking, vendor_id):
        if booking.vendor_id is None or booking.vendor_id != vendor_id:
            raise Forbidden("Not authorized for this booking.")

    @staticmethod
    def ensure_owner(booking, user_id):
        if booking.user_id != user_id:
            raise Forbidden("Not authorized for this booking.")

    @staticmethod
    def ensure_can_view(booking, actor):
        if actor.role == "admin":
            return
        if actor.role == "vendor" and booking.vendor_id == actor.id:
            return
        if actor.role == "user" and booking.user_id == actor.id:
            return
        raise Forbidden("Not authorized for this booking.")

    @staticmethod
    def list_for(actor, status=None):
        query = Booking.query
        if actor.role == "user":
            query = query.filter(Booking.user_id == actor.id)
        elif actor.role == "vendor":
            query = query.filter(Booking.vendor_id == actor.id)
        if status:
            query = query.filter(Booking.status == status.upper())
        return query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    @staticmethod
    def _parse_date(value):
        if value is None or isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value))
        except ValueError as exc:
            raise ValidationError("Scheduled date must be an ISO date (YYYY-MM-DD).") from exc

    @staticmethod
    def _address_fields(address):
        fields = {field: address.get(field) for field in ADDRESS_FIELDS}
        for field in ("latitude", "longitude"):
            if fields[field] in (None, ""):
                fields[field] = None
                continue
            try:
                fields[field] = Decimal(str(fields[field]))
            except InvalidOperation as exc:
                raise ValidationError(f"{field.title()} must be a number.") from exc
        return fields

    @staticmethod
    def _apply_price(booking, price):
        booking.base_service_fee = price.base_service_fee
        booking.distance_km = price.distance_km
        booking.travel_charges = price.travel_charges
        booking.subtotal = price.subtotal
        booking.gst = price.gst
        booking.total_amount = price.total_amount
        booking.advance_amount = price.advance_amount
        booking.remaining_amount = price.remaining_amount

    @staticmethod
    @booking_action
    def create_booking(
        user_id,
        base_service_fee,
        distance_km=0,
        scheduled_date=None,
        scheduled_time=None,
        address=None,
        purpose=None,
        notes=None,
        config=None,
    ):
        user = db.session.get(User, user_id)
        if not user or user.role != "user":
            raise Forbidden("Only users can request a survey.")

        if base_service_fee is None:
            raise ValidationError("Service fee is required.")
        if to_decimal(base_service_fee, "Service fee") == 0:
            raise ValidationError("Service fee must be greater than zero.")
        price = compute_price(base_service_fee, distance_km, config or PlatformService.pricing_config())

        booking = Booking(
            user_id=user.id,
            status=BookingStatus.PENDING,
            scheduled_date=BookingService._parse_date(scheduled_date),
            scheduled_time=(scheduled_time or "").strip() or None,
            purpose=(purpose or "").strip() or None,
            notes=(notes or "").strip() or None,
            **BookingService._address_fields(address or {}),
        )
        BookingService._apply_price(booking, price)
        db.session.add(booking)
        db.session.flush()

        NotificationService.push(
            user.id,
            "Booking received",
            f"Your survey request #{booking.id} was received. Total payable: {price.total_amount}.",
            booking_id=booking.id,
        )
        NotificationService.push_admins("New survey request", f"Booking #{booking.id} needs a vendor.", booking.id)
        BookingService.commit(booking)
        current_app.logger.info("Booking %s created by user %s (total %s)", booking.id, user.id, booking.total_amount)
        return booking

    @staticmethod
    @booking_action
    def assign_vendor(booking_id, vendor_id, admin_id=None):
        booking = BookingService.load(booking_id)
        ensure_status(booking, BookingStatus.PENDING)

        vendor = db.session.get(User, vendor_id) if vendor_id is not None else None
        if not vendor or vendor.role != "vendor" or not vendor.is_active:
            raise ValidationError("A valid, active vendor is required.")

        booking.vendor_id = vendor.id
        move = BookingService.move(booking, BookingStatus.ASSIGNED)
        NotificationService.push(
            vendor.id,
            "New booking assigned",
            f"Booking #{booking.id} was assigned to you. Please accept it.",
            booking_id=booking.id,
        )
        NotificationService.push(
            booking.user_id,
            "Vendor assigned",
            f"A vendor was assigned to booking #{booking.id}.",
            booking_id=booking.id,
        )
        return BookingService.commit(booking, move)

    @staticmethod
    @booking_action
    def accept_booking(booking_id, vendor_id):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        BookingService.ensure_vendor(booking, vendor_id)
        ensure_status(booking, BookingStatus.ASSIGNED)

        move = BookingService.move(booking, BookingStatus.ACCEPTED)
        NotificationService.push(
            booking.user_id,
            "Booking accepted",
            f"The vendor accepted booking #{booking.id}.",
            booking_id=booking.id,
        )
        return BookingService.commit(booking, move)

    @staticmethod
    @booking_action
    def reject_booking(booking_id, vendor_id, reason):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        BookingService.ensure_vendor(booking, vendor_id)
        reason = clean_reason(reason)
        ensure_status(booking, BookingStatus.ASSIGNED)

        booking.vendor_id = None
        booking.vendor_rejection_reason = reason
        booking.vendor_rejected_at = utcnow()
        booking.vendor_rejected_by_id = vendor_id
        move = BookingService.move(booking, BookingStatus.PENDING)
        NotificationService.push(
            booking.user_id,
            "Vendor unavailable",
            f"The assigned vendor declined booking #{booking.id}. A new vendor will be assigned.",
            booking_id=booking.id,
        )
        NotificationService.push_admins(
            "Booking rejected by vendor",
            f"Booking #{booking.id} needs a new vendor: {reason}",
            booking.id,
        )
        return BookingService.commit(booking, move)

    @staticmethod
    @booking_action
    def mark_visited(booking_id, vendor_id):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        BookingService.ensure_vendor(booking, vendor_id)
        ensure_status(booking, BookingStatus.ACCEPTED)

        move = BookingService.move(booking, BookingStatus.VISITED)
        NotificationService.push(
            booking.user_id,
            "Site visited",
            f"The vendor completed the site visit for booking #{booking.id}.",
            booking_id=booking.id,
        )
        return BookingService.commit(booking, move)

    @staticmethod
    @booking_action
    def upload_report(
        booking_id,
        vendor_id,
        water_found=None,
        images=None,
        report_file=None,
        machine_readings=None,
        notes=None,
    ):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        BookingService.ensure_vendor(booking, vendor_id)

        if not isinstance(water_found, bool):
            raise ValidationError("water_found must be true or false.")
        if images is not None and not isinstance(images, list):
            raise ValidationError("images must be a list.")
        images = [str(item).strip() for item in (images or []) if str(item).strip()]
        report_file = (report_file or "").strip() or None
        if not images and not report_file:
            raise ValidationError("Attach at least one image or a report file.")
        if machine_readings is not None and not isinstance(machine_readings, dict):
            raise ValidationError("machine_readings must be an object.")

        ensure_status(booking, BookingStatus.VISITED)

        # A fresh upload replaces any earlier (rejected) report entirely.
        booking.report_water_found = water_found
        booking.report_images = images
        booking.report_file = report_file
        booking.report_machine_readings = machine_readings
        booking.report_notes = (notes or "").strip() or None
        booking.report_uploaded_at = utcnow()
        booking.report_approved_at = None
        booking.report_approved_by_id = None
        booking.report_rejected_at = None
        booking.report_rejected_by_id = None
        booking.report_rejection_reason = None

        uploaded = BookingService.move(booking, BookingStatus.REPORT_UPLOADED)
        awaiting = BookingService.move(booking, BookingStatus.AWAITING_PAYMENT)
        NotificationService.push(
            booking.user_id,
            "Survey report ready",
            f"Pay the remaining {booking.remaining_amount} to unlock the report for booking #{booking.id}.",
            booking_id=booking.id,
        )
        NotificationService.push_admins("Report uploaded", f"Booking #{booking.id} has a report to review.", booking.id)
        return BookingService.commit(booking, uploaded, awaiting)

    @staticmethod
    def _check_amount(amount, expected, label):
        if amount is None:
            return
        if money(to_decimal(amount, label)) != money(expected):
            raise ValidationError(f"{label} must be exactly {expected}.")

    @staticmethod
    @booking_action
    def confirm_advance_payment(booking_id, amount=None, gateway_reference=None):
        booking = BookingService.load(booking_id)
        # Duplicate gateway callbacks are acknowledged without a second credit.
        if booking.advance_paid or BookingService.find_gateway_payment(booking, gateway_reference, "ADVANCE"):
            current_app.logger.info("Booking %s: duplicate advance confirmation ignored", booking.id)
            return booking
        ensure_open(booking)
        BookingService._check_amount(amount, booking.advance_amount, "Advance amount")

        now = utcnow()
        booking.advance_paid = True
        booking.advance_paid_at = now
        payment = BookingService.record_payment(
            booking,
            "ADVANCE",
            booking.advance_amount,
            gateway_reference=gateway_reference,
            description=f"Advance payment for booking #{booking.id}",
        )
        NotificationService.push(
            booking.user_id,
            "Advance received",
            f"Advance of {booking.advance_amount} received. Receipt #{payment.receipt_number}.",
            booking_id=booking.id,
        )
        NotificationService.push(
            booking.vendor_id,
            "Advance received",
            f"The user paid the advance for booking #{booking.id}.",
            booking_id=booking.id,
        )
        return BookingService.commit(booking)

    @staticmethod
    @booking_action
    def confirm_remaining_payment(booking_id, amount=None, gateway_reference=None):
        booking = BookingService.load(booking_id)
        if booking.remaining_paid or BookingService.find_gateway_payment(booking, gateway_reference, "REMAINING"):
            current_app.logger.info("Booking %s: duplicate remaining-payment confirmation ignored", booking.id)
            return booking
        ensure_status(booking, BookingStatus.AWAITING_PAYMENT)
        if not booking.has_report:
            raise InvalidTransition("Remaining payment cannot be captured before a report exists.")
        BookingService._check_amount(amount, booking.remaining_amount, "Remaining amount")

        booking.remaining_paid = True
        booking.remaining_paid_at = utcnow()
        payment = BookingService.record_payment(
            booking,
            "REMAINING",
            booking.remaining_amount,
            gateway_reference=gateway_reference,
            description=f"Remaining payment for booking #{booking.id}",
        )
        move = BookingService.move(booking, BookingStatus.PAYMENT_SUCCESS)
        NotificationService.push(
            booking.user_id,
            "Report unlocked",
            f"Payment received. Receipt #{payment.receipt_number}. Your survey report is now available.",
            booking_id=booking.id,
        )
        NotificationService.push(
            booking.vendor_id,
            "Payment received",
            f"The user paid the remaining amount for booking #{booking.id}.",
            booking_id=booking.id,
        )
        return BookingService.commit(booking, move)

    @staticmethod
    @booking_action
    def request_travel_charges(booking_id, vendor_id, amount, reason=None):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        BookingService.ensure_vendor(booking, vendor_id)

        if amount is None:
            raise ValidationError("Travel charges amount is required.")
        requested = money(to_decimal(amount, "Travel charges amount"))
        if requested <= 0:
            raise ValidationError("Travel charges amount must be greater than zero.")
        if booking.travel_request_status is not None:
            raise InvalidTransition(
                f"Travel charges request has already been {booking.travel_request_status.lower()}."
            )

        booking.travel_request_amount = requested
        booking.travel_request_reason = (reason or "").strip() or None
        booking.travel_request_status = "PENDING"
        booking.travel_requested_at = utcnow()
        NotificationService.push_admins(
            "Travel charges requested",
            f"Vendor requested {requested} travel charges for booking #{booking.id}.",
            booking.id,
        )
        return BookingService.commit(booking)

    @staticmethod
    def _uploader_allowed(booking, actor):
        policy = current_app.config.get("BOREWELL_RESULT_UPLOADER", "user")
        if policy not in UPLOADER_POLICIES:
            policy = "user"
        if actor.role == "user" and booking.user_id == actor.id:
            return policy in {"user", "any"}
        if actor.role == "vendor" and booking.vendor_id == actor.id:
            return policy in {"vendor", "any"}
        return False

    @staticmethod
    @booking_action
    def upload_borewell_result(booking_id, actor, status, images=None):
        booking = BookingService.load(booking_id)
        ensure_open(booking)

        outcome = (status or "").strip().upper()
        if outcome not in BOREWELL_OUTCOMES:
            raise ValidationError("Borewell status must be SUCCESS or FAILED.")
        if images is not None and not isinstance(images, list):
            raise ValidationError("images must be a list.")

        if (
            booking.status == BookingStatus.BOREWELL_UPLOADED
            and booking.borewell_uploaded_by_role == "vendor"
            and actor.role == "user"
            and booking.user_id == actor.id
        ):
            return BookingService._acknowledge_vendor_result(booking, outcome)

        if not BookingService._uploader_allowed(booking, actor):
            raise Forbidden("Not authorized to submit the borewell result for this booking.")
        ensure_status(booking, BookingStatus.PAYMENT_SUCCESS)

        booking.borewell_status = outcome
        booking.borewell_submitted_status = outcome
        booking.borewell_images = [str(item) for item in (images or [])]
        booking.borewell_uploaded_by_id = actor.id
        booking.borewell_uploaded_by_role = actor.role

        move = BookingService.move(booking, BookingStatus.BOREWELL_UPLOADED)
        NotificationService.push_admins(
            "Borewell result submitted",
            f"Booking #{booking.id} reported {outcome}. Approval required.",
            booking.id,
        )
        other_party = booking.vendor_id if actor.role == "user" else booking.user_id
        NotificationService.push(
            other_party,
            "Borewell result recorded",
            f"Borewell result {outcome} was recorded for booking #{booking.id}.",
            booking_id=booking.id,
        )
        return BookingService.commit(booking, move)

    @staticmethod
    def _acknowledge_vendor_result(booking, outcome):
        # The vendor's submission stays the value under review; the user's answer is kept beside it.
        if booking.borewell_user_status == outcome:
            return booking
        booking.borewell_user_status = outcome
        booking.borewell_user_confirmed_at = utcnow()
        if outcome != booking.borewell_submitted_status:
            NotificationService.push_admins(
                "Borewell result disputed",
                f"Booking #{booking.id}: vendor reported {booking.borewell_submitted_status}, user reported {outcome}.",
                booking.id,
            )
        NotificationService.push(
            booking.vendor_id,
            "Borewell result acknowledged",
            f"The user reported {outcome} for booking #{booking.id}.",
            booking_id=booking.id,
        )
        return BookingService.commit(booking)

    @staticmethod
    @booking_action
    def cancel_booking(booking_id, actor, reason=None):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        if actor.role == "user":
            BookingService.ensure_owner(booking, actor.id)
        elif actor.role != "admin":
            raise Forbidden("Only the booking user or an admin can cancel.")
        if booking.status not in CANCELLABLE_STATUSES:
            raise InvalidTransition(f"Booking #{booking.id} can no longer be cancelled ({booking.status}).")

        booking.cancelled_by = actor.role.upper()
        booking.cancellation_reason = (reason or "").strip() or None
        move = BookingService.move(booking, BookingStatus.CANCELLED)
        for party in {booking.user_id, booking.vendor_id} - {actor.id}:
            NotificationService.push(
                party,
                "Booking cancelled",
                f"Booking #{booking.id} was cancelled.",
                booking_id=booking.id,
            )
        return BookingService.commit(booking, move)

    @staticmethod
    @booking_action
    def reprice_booking(booking_id, admin_id, distance_km=None, base_service_fee=None, config=None):
        booking = BookingService.load(booking_id)
        ensure_open(booking)
        if booking.advance_paid or booking.remaining_paid or booking.has_report:
            raise InvalidTransition("Booking can no longer be repriced once paid or reported.")

        fee = base_service_fee if base_service_fee is not None else booking.base_service_fee
        if to_decimal(fee, "Service fee") == 0:
            raise ValidationError("Service fee must be greater than zero.")
        distance = distance_km if distance_km is not None else booking.distance_km
        price = compute_price(fee, distance, config or PlatformService.pricing_config())
        previous_total = booking.total_amount
        BookingService._apply_price(booking, price)

        NotificationService.push(
            booking.user_id,
            "Booking repriced",
            f"Booking #{booking.id} total changed from {previous_total} to {price.total_amount}.",
            booking_id=booking.id,
        )
        BookingService.commit(booking)
        current_app.logger.info(
            "Booking %s repriced by admin %s: %s -> %s", booking.id, admin_id, previous_total, booking.total_amount
        )
        return booking
