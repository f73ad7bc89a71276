from datetime import date, datetime

from lablink.models.activity_log import ActivityLog
from lablink.repositories.outbox_repo import OutboxRepo, AuditRepo

EVENT_AUDIT = "audit"


def _jsonable(values: dict | None):
    if values is None:
        return None
    out = {}
    for key, value in values.items():
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        out[key] = value
    return out


class AuditService:
    @staticmethod
    def record(actor_id: str | None, action: str, entity_type: str, entity_id: str | None,
               old_values: dict | None = None, new_values: dict | None = None):
        """
        Geçişin transaction'ında outbox'a yazılır; ActivityLog satırını dispatcher üretir.
        Böylece log yazımı hata verse bile asıl işlem geri alınmaz.
        """
        return OutboxRepo.enqueue(EVENT_AUDIT, entity_type, entity_id, {
            "actor_id": actor_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "old_values": _jsonable(old_values),
            "new_values": _jsonable(new_values),
        })

    @staticmethod
    def materialize(event) -> ActivityLog | None:
        if AuditRepo.exists_for_event(event.id):
            return None
        data = event.payload or {}
        return AuditRepo.append(ActivityLog(
            actor_id=data.get("actor_id"),
            action=data["action"],
            entity_type=data["entity_type"],
            entity_id=data.get("entity_id"),
            old_values=data.get("old_values"),
            new_values=data.get("new_values"),
            outbox_event_id=event.id,
            created_at=event.created_at,
        ))

    @staticmethod
    def list_logs(entity_type: str | None = None, entity_id: str | None = None,
                  actor_id: str | None = None, limit: int = 200):
        return AuditRepo.list(entity_type=entity_type, entity_id=entity_id, actor_id=actor_id, limit=limit)
