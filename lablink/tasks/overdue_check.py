# lablink/tasks/overdue_check.py
from flask import current_app

from lablink.extensions import db
from lablink.services.notification_service import NotificationService


def run_overdue_check_job(app):
    """Teslim tarihi geçmiş ödünçler için hatırlatma bildirimi (durum değiştirmez)."""
    with app.app_context():
        try:
            NotificationService.notify_overdue()
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception(f"[overdue_check] Hata: {e}")
