from lablink.extensions import db
from lablink.utils.clock import utcnow

PENDING = "pending"
DELIVERED = "delivered"
FAILED = "failed"


class OutboxEvent(db.Model):
    """Geçişle aynı transaction'da yazılan yan etki kaydı."""
    __tablename__ = "outbox_events"

    id = db.Column(db.Integer, primary_key=True)

    # audit / message / staff_notice / damage_reported
    event_type = db.Column(db.String(50), nullable=False, index=True)
    aggregate_type = db.Column(db.String(50), nullable=True)
    aggregate_id = db.Column(db.String(36), nullable=True, index=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    delivered_at = db.Column(db.DateTime, nullable=True)
