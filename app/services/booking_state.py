from app.errors import BookingClosed, InvalidTransition
from app.models.base import utcnow


class BookingStatus:
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    ACCEPTED = "ACCEPTED"
    VISITED = "VISITED"
    REPORT_UPLOADED = "REPORT_UPLOADED"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    BOREWELL_UPLOADED = "BOREWELL_UPLOADED"
    ADMIN_APPROVED = "ADMIN_APPROVED"
    FINAL_SETTLEMENT = "FINAL_SETTLEMENT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


LIFECYCLE = (
    BookingStatus.PENDING,
    BookingStatus.ASSIGNED,
    BookingStatus.ACCEPTED,
    BookingStatus.VISITED,
    BookingStatus.REPORT_UPLOADED,
    BookingStatus.AWAITING_PAYMENT,
    BookingStatus.PAYMENT_SUCCESS,
    BookingStatus.BOREWELL_UPLOADED,
    BookingStatus.ADMIN_APPROVED,
    BookingStatus.FINAL_SETTLEMENT,
    BookingStatus.COMPLETED,
)
TERMINAL_STATUSES = {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
CANCELLABLE_STATUSES = set(LIFECYCLE[: LIFECYCLE.index(BookingStatus.BOREWELL_UPLOADED)])
REPORT_PENDING_PAYMENT_STATUSES = {BookingStatus.REPORT_UPLOADED, BookingStatus.AWAITING_PAYMENT}

# Forward edges of the lifecycle plus report rejection (back to VISITED), vendor
# rejection (back to PENDING for reassignment) and cancellation.
TRANSITIONS = {
    current: {following} for current, following in zip(LIFECYCLE, LIFECYCLE[1:])
}
for _status in REPORT_PENDING_PAYMENT_STATUSES:
    TRANSITIONS[_status].add(BookingStatus.VISITED)
TRANSITIONS[BookingStatus.ASSIGNED].add(BookingStatus.PENDING)
for _status in CANCELLABLE_STATUSES:
    TRANSITIONS[_status].add(BookingStatus.CANCELLED)
TRANSITIONS[BookingStatus.COMPLETED] = set()
TRANSITIONS[BookingStatus.CANCELLED] = set()

TRANSITION_TIMESTAMPS = {
    BookingStatus.ASSIGNED: "assigned_at",
    BookingStatus.ACCEPTED: "accepted_at",
    BookingStatus.VISITED: "visited_at",
    BookingStatus.REPORT_UPLOADED: "report_first_uploaded_at",
    BookingStatus.AWAITING_PAYMENT: "awaiting_payment_at",
    BookingStatus.PAYMENT_SUCCESS: "payment_success_at",
    BookingStatus.BOREWELL_UPLOADED: "borewell_uploaded_at",
    BookingStatus.ADMIN_APPROVED: "admin_approved_at",
    BookingStatus.FINAL_SETTLEMENT: "final_settlement_at",
    BookingStatus.COMPLETED: "completed_at",
    BookingStatus.CANCELLED: "cancelled_at",
}


def status_rank(status):
    if status in LIFECYCLE:
        return LIFECYCLE.index(status)
    return -1


def has_reached(status, milestone):
    return status_rank(status) >= status_rank(milestone)


def is_closed(booking):
    return booking.status in TERMINAL_STATUSES


def ensure_open(booking):
    if is_closed(booking):
        raise BookingClosed(f"Booking #{booking.id} is {booking.status.lower()} and can no longer change.")


def ensure_status(booking, *allowed):
    ensure_open(booking)
    if booking.status not in allowed:
        expected = " or ".join(allowed)
        raise InvalidTransition(f"Booking #{booking.id} is {booking.status}; expected {expected}.")


def can_transition(current, target):
    return target in TRANSITIONS.get(current, set())


def transition(booking, target, now=None):
    """Move a booking to ``target`` in memory, stamping its timestamp once.

    The caller commits; the version check on commit rejects stale writes.
    """
    ensure_open(booking)
    current = booking.status
    if not can_transition(current, target):
        raise InvalidTransition(f"Invalid status transition from {current} to {target}.")

    booking.status = target
    stamp_field = TRANSITION_TIMESTAMPS.get(target)
    if stamp_field and getattr(booking, stamp_field) is None:
        setattr(booking, stamp_field, now or utcnow())
    return current
