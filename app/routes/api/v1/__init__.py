from flask import Blueprint

from app.routes.api.v1.admin import api_admin_bp
from app.routes.api.v1.bookings import api_booking_bp
from app.routes.api.v1.notifications import api_notification_bp
from app.routes.api.v1.payments import api_payment_bp
from app.routes.api.v1.settings import api_settings_bp

api_v1_bp = Blueprint("api_v1", __name__)
api_v1_bp.register_blueprint(api_booking_bp, url_prefix="/bookings")
api_v1_bp.register_blueprint(api_admin_bp, url_prefix="/admin")
api_v1_bp.register_blueprint(api_payment_bp, url_prefix="/payments")
api_v1_bp.register_blueprint(api_settings_bp, url_prefix="/settings")
api_v1_bp.register_blueprint(api_notification_bp, url_prefix="/notifications")
