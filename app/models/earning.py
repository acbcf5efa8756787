from app.extensions import db
from app.models.base import PKType, TimestampMixin


class VendorEarning(TimestampMixin, db.Model):
    __tablename__ = "vendor_earnings"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    vendor_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = db.Column(PKType, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    base_share = db.Column(db.Numeric(12, 2), nullable=False)
    incentive = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    penalty = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(12, 2), nullable=False)

    vendor = db.relationship("User", back_populates="earnings")
    booking = db.relationship("Booking", back_populates="earning")
