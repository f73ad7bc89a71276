from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from lablink.services.audit_service import AuditService
from lablink.services.messaging_service import MessagingService
from lablink.services.notification_service import NotificationService
from lablink.utils.decorators import role_required, current_user_id

notif_bp = Blueprint("notifications", __name__)
message_bp = Blueprint("messages", __name__)
audit_bp = Blueprint("audit", __name__)


def _unread_only() -> bool:
    return request.args.get("unread") == "1"


@notif_bp.get("/")
@jwt_required()
def list_notifications():
    rows = MessagingService.list_notifications(current_user_id(), _unread_only())
    return jsonify({"success": True, "data": [n.to_dict() for n in rows]})


@notif_bp.get("/unread-count")
@jwt_required()
def unread_count():
    return jsonify({"success": True, "data": MessagingService.unread_count(current_user_id())})


@notif_bp.post("/<int:notification_id>/read")
@jwt_required()
def read_notification(notification_id):
    MessagingService.mark_notification_read(notification_id, current_user_id())
    return jsonify({"success": True})


@notif_bp.post("/dispatch")
@role_required("admin")
def dispatch():
    stats = MessagingService.dispatch_pending()
    return jsonify({"success": True, "data": stats})


@notif_bp.post("/run-overdue-check")
@role_required("admin")
def run_overdue_check():
    sent = NotificationService.notify_overdue()
    return jsonify({"success": True, "message": "Gecikme kontrolü çalıştırıldı", "sent": sent})


@message_bp.get("/")
@jwt_required()
def list_messages():
    rows = MessagingService.list_messages(current_user_id(), _unread_only())
    return jsonify({"success": True, "data": [m.to_dict() for m in rows]})


@message_bp.post("/<message_id>/read")
@jwt_required()
def read_message(message_id):
    MessagingService.mark_message_read(message_id, current_user_id())
    return jsonify({"success": True})


@audit_bp.get("/")
@role_required("admin")
def list_logs():
    rows = AuditService.list_logs(
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id"),
        actor_id=request.args.get("actor_id"),
        limit=min(request.args.get("limit", 200, type=int), 1000),
    )
    return jsonify({"success": True, "data": [r.to_dict() for r in rows]})
