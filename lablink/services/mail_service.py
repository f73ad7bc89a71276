# lablink/services/mail_service.py
from __future__ import annotations

from flask import current_app
from flask_mail import Message

from lablink.extensions import db, mail
from lablink.models.mail_log import MailLog


class MailService:
    @staticmethod
    def enabled() -> bool:
        return bool(current_app.config.get("MAIL_ENABLED"))

    @staticmethod
    def send_email(to_email: str, subject: str, body: str) -> tuple[bool, str | None]:
        """
        return: (success, error_text)
        """
        try:
            msg = Message(subject=subject, recipients=[to_email], body=body)
            mail.send(msg)
            return True, None
        except Exception as e:
            current_app.logger.warning(f"[MailService] Mail gönderilemedi: {e}")
            return False, str(e)

    @staticmethod
    def log_mail(
        borrow_request_id: str | None,
        notif_type: str,
        to_email: str | None,
        message: str,
        success: bool,
        error: str | None = None,
    ) -> MailLog:
        # commit dışarıda: çağıranın transaction'ı
        row = MailLog(
            borrow_request_id=borrow_request_id,
            notif_type=notif_type,
            to_email=to_email,
            message=message,
            success=bool(success),
            error=error[:500] if error else None,
        )
        db.session.add(row)
        return row

    @staticmethod
    def _deliver(user, borrow_request_id, notif_type: str, subject: str, body: str) -> bool:
        to_email = getattr(user, "email", None) if user else None
        if not to_email:
            MailService.log_mail(borrow_request_id, notif_type, None, "Kullanıcı email bulunamadı", False, "missing_email")
            return False

        ok, err = MailService.send_email(to_email, subject, body)
        MailService.log_mail(
            borrow_request_id,
            notif_type,
            to_email,
            "Mail gönderildi" if ok else "Mail gönderilemedi",
            ok,
            err,
        )
        return ok

    @staticmethod
    def send_borrow_message_mail(message, recipient) -> bool:
        """approval / rejection / return_notice mesajlarının e-posta kopyası."""
        name = recipient.display_name if recipient else "Kullanıcı"
        lines = [f"Merhaba {name},", "", message.message]
        if message.pickup_location:
            lines.append(f"Teslim alma yeri: {message.pickup_location}")
        if message.collection_datetime:
            lines.append(f"Teslim alma zamanı: {message.collection_datetime:%d.%m.%Y %H:%M}")
        if message.conditions:
            lines.append(f"Koşullar: {message.conditions}")
        body = "\n".join(lines) + "\n"
        subject = f"LabLink: {message.subject or 'Ödünç talebi'}"
        return MailService._deliver(recipient, message.borrow_request_id, f"{message.message_type}_mail", subject, body)

    @staticmethod
    def send_overdue_mail(issued, recipient) -> bool:
        item = issued.borrow_request.item if issued.borrow_request else None
        name = recipient.display_name if recipient else "Kullanıcı"
        item_name = item.name if item else "Ekipman"
        subject = "LabLink: Geciken iade hatırlatması"
        body = (
            f"Merhaba {name},\n\n"
            f"'{item_name}' için iade tarihi geçti.\n"
            f"Teslim tarihi: {issued.due_date}\n\n"
            f"Lütfen en kısa sürede iade ediniz.\n"
        )
        return MailService._deliver(recipient, issued.borrow_request_id, "overdue_mail", subject, body)
