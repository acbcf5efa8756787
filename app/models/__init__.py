from app.models.booking import Booking
from app.models.earning import VendorEarning
from app.models.notification import Notification
from app.models.payment import Payment
from app.models.platform_setting import PlatformSetting
from app.models.user import User

__all__ = [
    "User",
    "Booking",
    "Notification",
    "VendorEarning",
    "Payment",
    "PlatformSetting",
]
