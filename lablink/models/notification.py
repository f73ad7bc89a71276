# lablink/models/notification.py
from lablink.extensions import db
from lablink.utils.clock import utcnow


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)

    # borrow_request, borrow_approved, return_submitted, return_approved ...
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.String(1000), nullable=True)

    related_entity_id = db.Column(db.String(36), nullable=True)
    related_entity_type = db.Column(db.String(50), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)

    # bir olay birden çok alıcıya gidebilir: (olay, kullanıcı) tekil
    outbox_event_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (db.UniqueConstraint("outbox_event_id", "user_id", name="uq_notification_event_user"),)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "related_entity_id": self.related_entity_id,
            "related_entity_type": self.related_entity_type,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
        }
