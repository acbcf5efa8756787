from app.services.approval_service import ApprovalService
from app.services.booking_service import BookingService, retry_on_conflict
from app.services.notification_service import NotificationService
from app.services.platform_service import PlatformService
from app.services.settlement_service import SettlementService

__all__ = [
    "ApprovalService",
    "BookingService",
    "NotificationService",
    "PlatformService",
    "SettlementService",
    "retry_on_conflict",
]
