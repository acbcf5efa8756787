from app.extensions import db
from app.models.base import PKType, TimestampMixin, money_column


class Booking(TimestampMixin, db.Model):
    """Canonical booking record.

    Payment, report, borewell result and travel-charges request are embedded
    sub-records stored as prefixed columns on this row. They are only written
    through the booking services, never directly by routes.
    """

    __tablename__ = "bookings"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    user_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    vendor_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    status = db.Column(db.String(24), nullable=False, default="PENDING", index=True)
    version = db.Column(db.Integer, nullable=False)

    scheduled_date = db.Column(db.Date, nullable=True)
    scheduled_time = db.Column(db.String(16), nullable=True)
    street = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    state = db.Column(db.String(120), nullable=True)
    pincode = db.Column(db.String(10), nullable=True, index=True)
    latitude = db.Column(db.Numeric(10, 7), nullable=True)
    longitude = db.Column(db.Numeric(10, 7), nullable=True)
    landmark = db.Column(db.String(255), nullable=True)
    village = db.Column(db.String(120), nullable=True)
    district = db.Column(db.String(120), nullable=True)
    purpose = db.Column(db.String(48), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # payment
    base_service_fee = money_column(nullable=False)
    distance_km = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    travel_charges = money_column(nullable=False, default=0)
    gst = money_column(nullable=False, default=0)
    subtotal = money_column(nullable=False)
    total_amount = money_column(nullable=False)
    advance_amount = money_column(nullable=False)
    advance_paid = db.Column(db.Boolean, nullable=False, default=False)
    advance_paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    remaining_amount = money_column(nullable=False)
    remaining_paid = db.Column(db.Boolean, nullable=False, default=False, index=True)
    remaining_paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    first_installment_amount = money_column()
    first_installment_paid = db.Column(db.Boolean, nullable=False, default=False)
    first_installment_paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    first_installment_paid_by_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    refund_amount = money_column()
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # payment.vendorSettlement
    settlement_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    settlement_amount = money_column()
    settlement_incentive = money_column()
    settlement_penalty = money_column()
    settlement_travel_charges = money_column()
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    settled_by_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # report
    report_water_found = db.Column(db.Boolean, nullable=True)
    report_images = db.Column(db.JSON, nullable=True)
    report_file = db.Column(db.String(500), nullable=True)
    report_machine_readings = db.Column(db.JSON, nullable=True)
    report_notes = db.Column(db.Text, nullable=True)
    report_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    report_approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    report_approved_by_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    report_rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    report_rejected_by_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    report_rejection_reason = db.Column(db.Text, nullable=True)

    # borewellResult
    borewell_status = db.Column(db.String(16), nullable=True)
    borewell_submitted_status = db.Column(db.String(16), nullable=True)
    borewell_images = db.Column(db.JSON, nullable=True)
    borewell_uploaded_by_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    borewell_uploaded_by_role = db.Column(db.String(16), nullable=True)
    borewell_approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    borewell_approved_by_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # The user acknowledging a vendor-submitted result; kept apart from the vendor values.
    borewell_user_status = db.Column(db.String(16), nullable=True)
    borewell_user_confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # travelChargesRequest
    travel_request_amount = money_column()
    travel_request_reason = db.Column(db.Text, nullable=True)
    travel_request_status = db.Column(db.String(16), nullable=True, index=True)
    travel_request_rejection_reason = db.Column(db.Text, nullable=True)
    travel_requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    travel_reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    travel_reviewed_by_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    travel_paid = db.Column(db.Boolean, nullable=False, default=False)
    travel_paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Transition timestamps. Stamped once by the state machine, never overwritten.
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    visited_at = db.Column(db.DateTime(timezone=True), nullable=True)
    report_first_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    awaiting_payment_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_success_at = db.Column(db.DateTime(timezone=True), nullable=True)
    borewell_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    final_settlement_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(16), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)
    vendor_rejection_reason = db.Column(db.Text, nullable=True)
    vendor_rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    vendor_rejected_by_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    user = db.relationship("User", back_populates="bookings", foreign_keys=[user_id])
    vendor = db.relationship("User", back_populates="vendor_bookings", foreign_keys=[vendor_id])
    payments = db.relationship("Payment", back_populates="booking", lazy="dynamic", order_by="Payment.id")
    earning = db.relationship("VendorEarning", back_populates="booking", uselist=False)
    notifications = db.relationship("Notification", back_populates="booking", lazy="dynamic")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        db.Index("ix_bookings_user_status", "user_id", "status"),
        db.Index("ix_bookings_vendor_status", "vendor_id", "status"),
        db.CheckConstraint("total_amount >= 0", name="ck_booking_total_non_negative"),
    )

    @property
    def has_report(self):
        return self.report_uploaded_at is not None

    @property
    def has_borewell_result(self):
        return self.borewell_status is not None
