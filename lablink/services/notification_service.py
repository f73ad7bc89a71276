from flask import current_app

from lablink.extensions import db
from lablink.models.notification import Notification
from lablink.repositories.borrow_repo import BorrowRepo
from lablink.repositories.notification_repo import NotificationRepo
from lablink.repositories.user_repo import UserRepo
from lablink.services.mail_service import MailService
from lablink.utils.clock import today

OVERDUE = "overdue"


class NotificationService:
    @staticmethod
    def notify_overdue(on_date=None) -> int:
        """
        Teslim tarihi geçmiş her aktif teslim için öğrenciye bir kez hatırlatma.
        Talebin durumu değişmez; gecikme sorgu anında hesaplanır.
        """
        overdue = BorrowRepo.find_overdue(on_date or today())
        sent = 0

        for issued in overdue:
            # daha önce hatırlatıldı mı?
            if NotificationRepo.already_sent(issued.id, OVERDUE):
                continue

            item = issued.borrow_request.item if issued.borrow_request else None
            NotificationRepo.add(Notification(
                user_id=issued.issued_to,
                type=OVERDUE,
                title="Geciken iade",
                message=f"'{item.name if item else 'Ekipman'}' için teslim tarihi geçti ({issued.due_date}).",
                related_entity_id=issued.id,
                related_entity_type="issued_item",
            ))
            if MailService.enabled():
                MailService.send_overdue_mail(issued, UserRepo.get_by_id(issued.issued_to))
            sent += 1

        # tek commit
        db.session.commit()
        current_app.logger.info(f"[overdue] overdue={len(overdue)} reminded={sent}")
        return sent
