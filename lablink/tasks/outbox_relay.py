# lablink/tasks/outbox_relay.py
from flask import current_app

from lablink.extensions import db
from lablink.services.messaging_service import MessagingService


def run_outbox_relay_job(app):
    """
    Commit edilmiş ama henüz teslim edilmemiş outbox olaylarını işler.
    Inline dispatch kaçırdıysa (mail sunucusu düşük, süreç kapandı vb.) burada toparlanır.
    """
    with app.app_context():
        try:
            stats = MessagingService.dispatch_pending()
            if stats["retry"] or stats["failed"]:
                current_app.logger.warning(f"[outbox_relay] {stats}")
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception(f"[outbox_relay] Hata: {e}")
