from app.extensions import db
from app.models.base import PKType, TimestampMixin


class Notification(TimestampMixin, db.Model):
    """In-app record of a booking event for one party. Delivery happens elsewhere."""

    __tablename__ = "notifications"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    user_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = db.Column(PKType, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=True, index=True)
    title = db.Column(db.String(180), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User", back_populates="notifications")
    booking = db.relationship("Booking", back_populates="notifications")

    __table_args__ = (db.Index("ix_notifications_user_unread", "user_id", "is_read"),)

    def to_dict(self):
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "title": self.title,
            "message": self.message,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
        }
