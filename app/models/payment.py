from app.extensions import db
from app.models.base import PKType, TimestampMixin

PAYMENT_TYPES = {"ADVANCE", "REMAINING", "TRAVEL_CHARGES", "FIRST_INSTALLMENT", "SETTLEMENT", "REFUND"}


class Payment(TimestampMixin, db.Model):
    """Ledger row for one money movement on a booking."""

    __tablename__ = "payments"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    booking_id = db.Column(PKType, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    # Assigned from the row id right after the insert is flushed.
    receipt_number = db.Column(db.String(32), nullable=True, unique=True, index=True)
    payment_type = db.Column(db.String(24), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_status = db.Column(db.String(24), nullable=False, default="SUCCESS", index=True)
    gateway_reference = db.Column(db.String(120), nullable=True, unique=True)
    user_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    vendor_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    description = db.Column(db.String(255), nullable=True)

    booking = db.relationship("Booking", back_populates="payments")

    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_payment_amount_non_negative"),
    )
