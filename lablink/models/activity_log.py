from lablink.extensions import db
from lablink.utils.clock import utcnow


class ActivityLog(db.Model):
    """Denetim izi. Normal akışta güncellenmez, silinmez."""
    __tablename__ = "activity_logs"

    id = db.Column(db.Integer, primary_key=True)

    actor_id = db.Column(db.String(36), nullable=True, index=True)
    action = db.Column(db.String(50), nullable=False)
    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.String(36), nullable=True, index=True)

    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)

    outbox_event_id = db.Column(db.Integer, unique=True, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "created_at": self.created_at.isoformat(),
        }
