from sqlalchemy import update

from lablink.extensions import db
from lablink.models.notification import Notification
from lablink.models.borrow_message import BorrowMessage


class NotificationRepo:
    @staticmethod
    def already_sent(related_entity_id: str, notif_type: str) -> bool:
        return Notification.query.filter_by(related_entity_id=related_entity_id, type=notif_type).first() is not None

    @staticmethod
    def exists_for_event(outbox_event_id: int, user_id: str) -> bool:
        return Notification.query.filter_by(outbox_event_id=outbox_event_id, user_id=user_id).first() is not None

    @staticmethod
    def add(entry: Notification):
        db.session.add(entry)
        return entry

    @staticmethod
    def list_for_user(user_id: str, unread_only: bool = False):
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        return q.order_by(Notification.id.desc()).all()

    @staticmethod
    def unread_count(user_id: str) -> int:
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    @staticmethod
    def mark_read(notification_id: int, user_id: str) -> bool:
        result = db.session.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class MessageRepo:
    @staticmethod
    def exists_for_event(outbox_event_id: int) -> bool:
        return BorrowMessage.query.filter_by(outbox_event_id=outbox_event_id).first() is not None

    @staticmethod
    def add(message: BorrowMessage):
        db.session.add(message)
        return message

    @staticmethod
    def list_for_recipient(user_id: str, unread_only: bool = False):
        q = BorrowMessage.query.filter_by(recipient_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        return q.order_by(BorrowMessage.created_at.desc()).all()

    @staticmethod
    def mark_read(message_id: str, user_id: str) -> bool:
        # mesaj gövdesi değişmez, sadece okundu bilgisi
        result = db.session.execute(
            update(BorrowMessage)
            .where(BorrowMessage.id == message_id, BorrowMessage.recipient_id == user_id)
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
