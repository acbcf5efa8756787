from app.extensions import db
from app.models.base import PKType, TimestampMixin


class PlatformSetting(TimestampMixin, db.Model):
    __tablename__ = "platform_settings"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.String(255), nullable=False)
    label = db.Column(db.String(120), nullable=True)
    category = db.Column(db.String(32), nullable=False, default="general", index=True)
    updated_by_id = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
