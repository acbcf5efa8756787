from app.extensions import db
from app.models import Notification, User


class NotificationService:
    @staticmethod
    def push(user_id, title, message, booking_id=None):
        # Bookings without an assigned vendor simply have nobody to tell.
        if user_id is None:
            return None
        notification = Notification(user_id=user_id, booking_id=booking_id, title=title, message=message)
        db.session.add(notification)
        db.session.flush()
        return notification

    @staticmethod
    def push_admins(title, message, booking_id=None):
        admins = User.query.filter_by(role="admin", is_active_user=True).all()
        return [NotificationService.push(admin.id, title, message, booking_id=booking_id) for admin in admins]

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    @staticmethod
    def latest_for_user(user_id, limit=20, unread_only=False):
        query = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            query = query.filter_by(is_read=False)
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    @staticmethod
    def mark_read(user_id, ids=None):
        query = Notification.query.filter_by(user_id=user_id, is_read=False)
        if ids:
            query = query.filter(Notification.id.in_(ids))
        updated = query.update({"is_read": True}, synchronize_session=False)
        db.session.commit()
        return updated
