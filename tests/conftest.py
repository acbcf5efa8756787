"""
Shared fixtures: an app on in-memory SQLite, the three parties, and a helper
that walks a booking through the lifecycle to a requested status.
"""

import pytest
from flask import g
from flask.testing import FlaskClient

from app import create_app
from app.extensions import db
from app.models import User
from app.services import ApprovalService, BookingService
from app.services.booking_state import LIFECYCLE, BookingStatus
from app.services.platform_service import PlatformService


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        db.drop_all()
        db.create_all()
        PlatformService.seed_defaults()
        yield app
        db.session.remove()
        db.drop_all()


class _FreshActorClient(FlaskClient):
    # The app fixture keeps one app context pushed, which Flask reuses for every
    # test-client request; drop Flask-Login's per-request user cache so each
    # request resolves its own actor header.
    def open(self, *args, **kwargs):
        g.pop("_login_user", None)
        return super().open(*args, **kwargs)


@pytest.fixture
def client(app):
    app.test_client_class = _FreshActorClient
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(role="user", name=None, active=True):
        counter["n"] += 1
        user = User(
            full_name=name or f"{role.title()} {counter['n']}",
            email=f"{role}{counter['n']}@example.com",
            phone=f"90000000{counter['n']:02d}",
            role=role,
            is_active_user=active,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def user(make_user):
    return make_user("user")


@pytest.fixture
def vendor(make_user):
    return make_user("vendor")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


class Lifecycle:
    """Drives bookings forward through the real service actions."""

    def __init__(self, user, vendor, admin):
        self.user = user
        self.vendor = vendor
        self.admin = admin

    def create(self, base_service_fee="1000", distance_km="40"):
        booking = BookingService.create_booking(
            self.user.id,
            base_service_fee,
            distance_km,
            address={"village": "Kondapur", "district": "Medak", "pincode": "502001"},
        )
        return booking.id

    def step(self, booking_id, target, outcome="SUCCESS"):
        if target == BookingStatus.ASSIGNED:
            return BookingService.assign_vendor(booking_id, self.vendor.id, admin_id=self.admin.id)
        if target == BookingStatus.ACCEPTED:
            return BookingService.accept_booking(booking_id, self.vendor.id)
        if target == BookingStatus.VISITED:
            return BookingService.mark_visited(booking_id, self.vendor.id)
        if target in {BookingStatus.REPORT_UPLOADED, BookingStatus.AWAITING_PAYMENT}:
            return BookingService.upload_report(
                booking_id,
                self.vendor.id,
                water_found=True,
                images=["reports/site-1.jpg"],
                machine_readings={"depth": 180, "flowRate": 2.5},
            )
        if target == BookingStatus.PAYMENT_SUCCESS:
            return BookingService.confirm_remaining_payment(booking_id)
        if target == BookingStatus.BOREWELL_UPLOADED:
            return BookingService.upload_borewell_result(booking_id, self.user, outcome)
        if target == BookingStatus.ADMIN_APPROVED:
            return ApprovalService.approve_borewell_result(booking_id, self.admin.id, outcome == "SUCCESS")
        raise ValueError(f"No helper step for {target}")

    def to(self, target, outcome="SUCCESS", booking_id=None):
        booking_id = booking_id or self.create()
        current = BookingService.load(booking_id).status
        for status in LIFECYCLE[LIFECYCLE.index(current) + 1 : LIFECYCLE.index(target) + 1]:
            if status == BookingStatus.REPORT_UPLOADED:
                continue
            self.step(booking_id, status, outcome=outcome)
        return booking_id


@pytest.fixture
def lifecycle(user, vendor, admin):
    return Lifecycle(user, vendor, admin)


@pytest.fixture
def actor_headers():
    def _headers(party):
        return {"X-User-Id": str(party.id)}

    return _headers
