"""
Messaging / notification dispatcher.

Lifecycle services never write BorrowMessage or Notification rows directly.
They enqueue an OutboxEvent in the same transaction as the state change, and
``dispatch_pending`` turns committed events into rows (plus an optional
e-mail). Each event is committed on its own; handlers skip work already done
for the same event id, so a redelivered event produces nothing new.
"""
from datetime import datetime

from flask import current_app

from lablink.errors import DependencyUnavailable, NotFound
from lablink.extensions import db
from lablink.models.borrow_message import BorrowMessage
from lablink.models.notification import Notification
from lablink.models.outbox_event import PENDING, DELIVERED, FAILED
from lablink.repositories.notification_repo import NotificationRepo, MessageRepo
from lablink.repositories.outbox_repo import OutboxRepo
from lablink.repositories.user_repo import UserRepo
from lablink.services.audit_service import AuditService, EVENT_AUDIT
from lablink.services.mail_service import MailService
from lablink.utils.clock import utcnow

EVENT_MESSAGE = "message"
EVENT_STAFF_NOTICE = "staff_notice"
EVENT_DAMAGE = "damage_reported"

# e-posta kopyası gönderilen mesaj tipleri
MAILED_TYPES = ("approval", "rejection", "return_notice")

_HANDLERS = {
    EVENT_MESSAGE: "_handle_message",
    EVENT_STAFF_NOTICE: "_handle_staff_notice",
    EVENT_DAMAGE: "_handle_damage",
    EVENT_AUDIT: "_handle_audit",
}


class MessagingService:
    # -----------------------------
    # Enqueue (çağıranın transaction'ında)
    # -----------------------------
    @staticmethod
    def send_borrow_message(borrow, sender_id, message_type: str, subject: str, body: str,
                            notification_type: str, pickup_location=None,
                            collection_datetime=None, conditions=None):
        return OutboxRepo.enqueue(EVENT_MESSAGE, "borrow_request", borrow.id, {
            "borrow_request_id": borrow.id,
            "sender_id": sender_id,
            "recipient_id": borrow.student_id,
            "message_type": message_type,
            "subject": subject,
            "message": body,
            "pickup_location": pickup_location,
            "collection_datetime": collection_datetime.isoformat() if collection_datetime else None,
            "conditions": conditions,
            "notification_type": notification_type,
        })

    @staticmethod
    def notify_staff(department_id, notification_type: str, title: str, body: str,
                     related_entity_id: str, related_entity_type: str, actor_id=None):
        return OutboxRepo.enqueue(EVENT_STAFF_NOTICE, related_entity_type, related_entity_id, {
            "department_id": department_id,
            "actor_id": actor_id,
            "type": notification_type,
            "title": title,
            "message": body,
            "related_entity_id": related_entity_id,
            "related_entity_type": related_entity_type,
        })

    @staticmethod
    def report_damage(return_row, borrow, shortfall: int, actor_id=None):
        return OutboxRepo.enqueue(EVENT_DAMAGE, "return_request", return_row.id, {
            "return_request_id": return_row.id,
            "borrow_request_id": borrow.id,
            "item_id": borrow.item_id,
            "department_id": borrow.item_department_id,
            "condition": return_row.item_condition,
            "quantity": return_row.quantity,
            "shortfall": shortfall,
            "notes": return_row.condition_notes,
            "actor_id": actor_id,
        })

    # -----------------------------
    # Handlers
    # -----------------------------
    @staticmethod
    def _add_notification(event, user_id, notification_type, title, body, entity_id, entity_type):
        if NotificationRepo.exists_for_event(event.id, user_id):
            return None
        return NotificationRepo.add(Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=(body or "")[:1000],
            related_entity_id=entity_id,
            related_entity_type=entity_type,
            is_read=False,
            outbox_event_id=event.id,
        ))

    @staticmethod
    def _staff_recipients(department_id, exclude=None) -> list:
        ids = list(UserRepo.admin_ids())
        if department_id:
            ids.extend(UserRepo.department_staff_ids(department_id))
        seen = []
        for user_id in ids:
            if user_id != exclude and user_id not in seen:
                seen.append(user_id)
        return seen

    @staticmethod
    def _handle_message(event):
        data = event.payload or {}
        if MessageRepo.exists_for_event(event.id):
            return
        collection = data.get("collection_datetime")
        message = MessageRepo.add(BorrowMessage(
            borrow_request_id=data["borrow_request_id"],
            sender_id=data.get("sender_id"),
            recipient_id=data["recipient_id"],
            message_type=data["message_type"],
            subject=data.get("subject"),
            message=data["message"],
            pickup_location=data.get("pickup_location"),
            collection_datetime=datetime.fromisoformat(collection) if collection else None,
            conditions=data.get("conditions"),
            is_read=False,
            outbox_event_id=event.id,
        ))
        MessagingService._add_notification(
            event, data["recipient_id"], data.get("notification_type") or data["message_type"],
            data.get("subject") or "Ödünç talebi", data["message"],
            data["borrow_request_id"], "borrow_request",
        )
        if MailService.enabled() and message.message_type in MAILED_TYPES:
            MailService.send_borrow_message_mail(message, UserRepo.get_by_id(message.recipient_id))

    @staticmethod
    def _handle_staff_notice(event):
        data = event.payload or {}
        for user_id in MessagingService._staff_recipients(data.get("department_id"), exclude=data.get("actor_id")):
            MessagingService._add_notification(
                event, user_id, data["type"], data["title"], data.get("message"),
                data.get("related_entity_id"), data.get("related_entity_type"),
            )

    @staticmethod
    def _handle_damage(event):
        data = event.payload or {}
        body = f"Durum: {data.get('condition')}, adet: {data.get('quantity')}"
        if data.get("shortfall"):
            body += f", eksik: {data['shortfall']}"
        if data.get("notes"):
            body += f". Not: {data['notes']}"
        for user_id in MessagingService._staff_recipients(data.get("department_id")):
            MessagingService._add_notification(
                event, user_id, EVENT_DAMAGE, "Hasarlı / eksik iade", body,
                data.get("item_id"), "item",
            )

    @staticmethod
    def _handle_audit(event):
        AuditService.materialize(event)

    # -----------------------------
    # Relay
    # -----------------------------
    @staticmethod
    def dispatch_pending(limit: int | None = None) -> dict:
        """
        Bekleyen olayları sırayla teslim eder. Her olay kendi commit'inde;
        hata veren olay attempts/last_error ile işaretlenip sonraki turda tekrar denenir.
        """
        cfg = current_app.config
        limit = limit or cfg.get("OUTBOX_BATCH_SIZE", 100)
        max_attempts = cfg.get("OUTBOX_MAX_ATTEMPTS", 5)
        stats = {"delivered": 0, "retry": 0, "failed": 0}

        event_ids = [e.id for e in OutboxRepo.list_pending(limit)]
        for event_id in event_ids:
            event = OutboxRepo.get(event_id)
            if event is None or event.status != PENDING:
                continue
            event_type = event.event_type
            try:
                handler_name = _HANDLERS.get(event_type)
                if handler_name is None:
                    raise ValueError(f"Bilinmeyen olay tipi: {event_type}")
                getattr(MessagingService, handler_name)(event)
                event.status = DELIVERED
                event.delivered_at = utcnow()
                event.attempts = (event.attempts or 0) + 1
                db.session.commit()
                stats["delivered"] += 1
            except Exception as e:
                db.session.rollback()
                err = DependencyUnavailable(f"{event_type} olayı teslim edilemedi: {e}")
                current_app.logger.warning(f"[outbox] event={event_id} {err.message}")

                event = OutboxRepo.get(event_id)
                if event is None or event.status != PENDING:
                    continue
                event.attempts = (event.attempts or 0) + 1
                event.last_error = str(e)[:500]
                if event.attempts >= max_attempts:
                    event.status = FAILED
                    stats["failed"] += 1
                    current_app.logger.error(f"[outbox] event={event_id} failed after {event.attempts} attempts")
                else:
                    stats["retry"] += 1
                db.session.commit()

        if event_ids:
            current_app.logger.info(
                f"[outbox] dispatched delivered={stats['delivered']} retry={stats['retry']} failed={stats['failed']}"
            )
        return stats

    @staticmethod
    def dispatch_after_commit():
        """Commit sonrası anında teslim denemesi; kalanı relay job toplar."""
        if not current_app.config.get("OUTBOX_DISPATCH_INLINE"):
            return None
        try:
            return MessagingService.dispatch_pending()
        except Exception as e:
            db.session.rollback()
            current_app.logger.warning(f"[outbox] inline dispatch yapılamadı, relay tekrar deneyecek: {e}")
            return None

    # -----------------------------
    # Read side
    # -----------------------------
    @staticmethod
    def list_messages(user_id: str, unread_only: bool = False):
        return MessageRepo.list_for_recipient(user_id, unread_only)

    @staticmethod
    def list_notifications(user_id: str, unread_only: bool = False):
        return NotificationRepo.list_for_user(user_id, unread_only)

    @staticmethod
    def mark_message_read(message_id: str, user_id: str):
        if not MessageRepo.mark_read(message_id, user_id):
            raise NotFound("Mesaj bulunamadı")
        db.session.commit()

    @staticmethod
    def mark_notification_read(notification_id: int, user_id: str):
        if not NotificationRepo.mark_read(notification_id, user_id):
            raise NotFound("Bildirim bulunamadı")
        db.session.commit()

    @staticmethod
    def unread_count(user_id: str) -> dict:
        return {
            "messages": len(MessageRepo.list_for_recipient(user_id, unread_only=True)),
            "notifications": NotificationRepo.unread_count(user_id),
        }
