from flask_login import UserMixin

from app.extensions import db
from app.models.base import PKType, TimestampMixin

ROLES = {"user", "vendor", "admin"}


class User(UserMixin, TimestampMixin, db.Model):
    """Party record. Credentials and sessions are owned by the external auth service."""

    __tablename__ = "users"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    phone = db.Column(db.String(15), nullable=False, index=True, default="")
    role = db.Column(db.String(24), nullable=False, index=True)
    is_active_user = db.Column(db.Boolean, nullable=False, default=True)

    bookings = db.relationship("Booking", back_populates="user", lazy="dynamic", foreign_keys="Booking.user_id")
    vendor_bookings = db.relationship(
        "Booking", back_populates="vendor", lazy="dynamic", foreign_keys="Booking.vendor_id"
    )
    notifications = db.relationship("Notification", back_populates="user", lazy="dynamic")
    earnings = db.relationship("VendorEarning", back_populates="vendor", lazy="dynamic")

    __table_args__ = (
        db.CheckConstraint("role IN ('user', 'vendor', 'admin')", name="ck_user_role"),
    )

    @property
    def is_active(self):
        return bool(self.is_active_user)
