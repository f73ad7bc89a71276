from lablink.extensions import db
from lablink.models.outbox_event import OutboxEvent, PENDING
from lablink.models.activity_log import ActivityLog


class OutboxRepo:
    @staticmethod
    def enqueue(event_type: str, aggregate_type: str | None, aggregate_id: str | None, payload: dict):
        """Çağıranın transaction'ına eklenir; commit çağıranda."""
        event = OutboxEvent(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            payload=payload,
            status=PENDING,
            attempts=0,
        )
        db.session.add(event)
        return event

    @staticmethod
    def get(event_id: int):
        return db.session.get(OutboxEvent, event_id)

    @staticmethod
    def list_pending(limit: int = 100):
        return OutboxEvent.query.filter(OutboxEvent.status == PENDING).order_by(OutboxEvent.id.asc()).limit(limit).all()


class AuditRepo:
    @staticmethod
    def exists_for_event(outbox_event_id: int) -> bool:
        return ActivityLog.query.filter_by(outbox_event_id=outbox_event_id).first() is not None

    @staticmethod
    def append(entry: ActivityLog):
        # sadece ekleme; update/delete yolu yok
        db.session.add(entry)
        return entry

    @staticmethod
    def list(entity_type: str | None = None, entity_id: str | None = None, actor_id: str | None = None, limit: int = 200):
        q = ActivityLog.query
        if entity_type:
            q = q.filter(ActivityLog.entity_type == entity_type)
        if entity_id:
            q = q.filter(ActivityLog.entity_id == entity_id)
        if actor_id:
            q = q.filter(ActivityLog.actor_id == actor_id)
        return q.order_by(ActivityLog.id.desc()).limit(limit).all()
