from lablink.extensions import db
from lablink.utils.clock import utcnow
from lablink.utils.ids import new_id

MESSAGE_TYPES = ("approval", "rejection", "info", "return_notice", "reply")


class BorrowMessage(db.Model):
    __tablename__ = "borrow_messages"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    borrow_request_id = db.Column(db.String(36), db.ForeignKey("borrow_requests.id"), nullable=False, index=True)
    sender_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    recipient_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)

    message_type = db.Column(db.String(20), nullable=False, default="info")
    subject = db.Column(db.String(255), nullable=True)
    message = db.Column(db.Text, nullable=False)

    collection_datetime = db.Column(db.DateTime, nullable=True)
    pickup_location = db.Column(db.String(255), nullable=True)
    conditions = db.Column(db.Text, nullable=True)

    # Gönderildikten sonra sadece is_read değişir
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    # Aynı outbox olayı iki kez işlenirse ikinci mesaj oluşmasın
    outbox_event_id = db.Column(db.Integer, unique=True, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "borrow_request_id": self.borrow_request_id,
            "sender_id": self.sender_id,
            "recipient_id": self.recipient_id,
            "message_type": self.message_type,
            "subject": self.subject,
            "message": self.message,
            "collection_datetime": self.collection_datetime.isoformat() if self.collection_datetime else None,
            "pickup_location": self.pickup_location,
            "conditions": self.conditions,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
        }
