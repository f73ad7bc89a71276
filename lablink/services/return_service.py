from datetime import datetime

from flask import current_app

from lablink.errors import Conflict, Forbidden, InvalidTransition, NotFound, ValidationError
from lablink.models.borrow import APPROVED, RETURN_PENDING, RETURNED
from lablink.models.issued_item import RETURNED as ISSUED_RETURNED
from lablink.models.item import BUCKET_AVAILABLE, BUCKET_DAMAGED, BUCKET_MAINTENANCE
from lablink.models.return_request import (
    ReturnRequest, PENDING, APPROVED as RETURN_APPROVED, REJECTED as RETURN_REJECTED,
    CONDITIONS, PROBLEM_CONDITIONS,
)
from lablink.repositories.borrow_repo import BorrowRepo
from lablink.repositories.return_repo import ReturnRepo
from lablink.repositories.tx import atomic
from lablink.services.access_service import require_approver, visible_department_ids
from lablink.services.audit_service import AuditService
from lablink.services.events import return_transitioned, damage_reported, publish
from lablink.services.ledger_service import QuantityLedger
from lablink.services.messaging_service import MessagingService
from lablink.utils.clock import utcnow

# iade edilen durum -> stok kovası
CONDITION_BUCKETS = {
    "good": BUCKET_AVAILABLE,
    "minor_wear": BUCKET_AVAILABLE,
    "damaged": BUCKET_DAMAGED,
    "lost": BUCKET_DAMAGED,
    "missing_parts": BUCKET_MAINTENANCE,
}


class ReturnService:
    @staticmethod
    def _get(return_id: str) -> ReturnRequest:
        row = ReturnRepo.get(return_id)
        if not row:
            raise NotFound("İade talebi bulunamadı")
        return row

    @staticmethod
    def submit_return(borrow_request_id: str, actor_id: str, quantity: int, item_condition: str,
                      return_image_url: str, condition_notes: str | None = None,
                      notes: str | None = None, return_datetime: datetime | None = None) -> ReturnRequest:
        borrow = BorrowRepo.get(borrow_request_id)
        if not borrow:
            raise NotFound("Ödünç talebi bulunamadı")
        if borrow.student_id != actor_id:
            raise Forbidden("Bu talep size ait değil")
        if borrow.status not in (APPROVED, RETURN_PENDING):
            raise InvalidTransition("Bu talep için iade yapılamaz", current_state=borrow.status)
        if borrow.active_return_id:
            raise InvalidTransition("Bu talep için bekleyen bir iade zaten var", current_state=borrow.status)

        issued = BorrowRepo.get_issued(borrow.id)
        held = issued.quantity if issued else borrow.quantity
        if not isinstance(quantity, int) or quantity < 1 or quantity > held:
            raise ValidationError(f"İade adedi 1 ile {held} arasında olmalı")
        if item_condition not in CONDITIONS:
            raise ValidationError("Geçersiz ürün durumu")
        return_image_url = (return_image_url or "").strip()
        if not return_image_url:
            raise ValidationError("İade fotoğrafı zorunlu")

        old_status = borrow.status
        with atomic():
            row = ReturnRepo.add(ReturnRequest(
                borrow_request_id=borrow.id,
                student_id=actor_id,
                item_id=borrow.item_id,
                quantity=quantity,
                return_datetime=return_datetime or utcnow(),
                item_condition=item_condition,
                condition_notes=condition_notes,
                return_image_url=return_image_url,
                notes=notes,
                status=PENDING,
            ))
            # en fazla bir bekleyen iade: active_return_id boşsa bağlanır
            if not BorrowRepo.attach_return(borrow, row.id):
                raise Conflict("Bu talep için başka bir iade işlemi sürüyor")
            AuditService.record(actor_id, "return_submitted", "return_request", row.id, None, {
                "borrow_request_id": borrow.id,
                "quantity": quantity,
                "item_condition": item_condition,
                "status": PENDING,
            })
            MessagingService.notify_staff(
                borrow.item_department_id, "return_submitted", "Yeni iade talebi",
                f"{quantity} adet iade bildirildi (durum: {item_condition}).",
                row.id, "return_request", actor_id=actor_id,
            )

        current_app.logger.info(f"[ReturnService] submitted return={row.id} request={borrow_request_id}")
        MessagingService.dispatch_after_commit()
        publish(return_transitioned, return_id=row.id, borrow_id=borrow_request_id,
                old_status=old_status, new_status=RETURN_PENDING, actor_id=actor_id)
        return row

    @staticmethod
    def verify_return(return_id: str, actor_id: str) -> ReturnRequest:
        row = ReturnService._get(return_id)
        borrow = row.borrow_request
        require_approver(actor_id, borrow.item_department_id)

        if row.status != PENDING:
            raise InvalidTransition("İade talebi doğrulanabilir durumda değil", current_state=row.status)
        if borrow.status != RETURN_PENDING:
            raise InvalidTransition("Ödünç talebi iade beklemiyor", current_state=borrow.status)

        issued = BorrowRepo.get_issued(borrow.id)
        if not issued:
            raise InvalidTransition("Teslim kaydı bulunamadı", current_state=borrow.status)

        condition = row.item_condition
        to_bucket = CONDITION_BUCKETS[condition]
        shortfall = issued.quantity - row.quantity
        problem = condition in PROBLEM_CONDITIONS or shortfall > 0
        now = utcnow()

        with atomic():
            if not ReturnRepo.resolve(row, status=RETURN_APPROVED, verified_by=actor_id, verified_at=now, updated_at=now):
                raise Conflict()
            ok = BorrowRepo.transition(
                borrow, RETURN_PENDING,
                status=RETURNED, actual_return_date=now, active_return_id=None, updated_at=now,
            )
            if not ok:
                raise Conflict()

            QuantityLedger.commit_return(
                borrow.item_id, row.quantity, borrow.id, to_bucket, shortfall=shortfall, condition=condition
            )
            issued.status = ISSUED_RETURNED
            issued.returned_date = now

            AuditService.record(actor_id, "return_verified", "return_request", row.id,
                                {"status": PENDING, "borrow_status": RETURN_PENDING},
                                {"status": RETURN_APPROVED, "borrow_status": RETURNED,
                                 "bucket": to_bucket, "shortfall": shortfall})

            body = "İadeniz kontrol edildi ve kabul edildi."
            if problem:
                body += f" Not edilen durum: {condition}."
            MessagingService.send_borrow_message(
                borrow, actor_id, "return_notice", "İadeniz onaylandı", body, "return_approved",
            )
            if problem:
                MessagingService.report_damage(row, borrow, shortfall, actor_id=actor_id)

        current_app.logger.info(
            f"[ReturnService] verified return={return_id} condition={condition} bucket={to_bucket} shortfall={shortfall}"
        )
        MessagingService.dispatch_after_commit()
        publish(return_transitioned, return_id=return_id, borrow_id=borrow.id,
                old_status=RETURN_PENDING, new_status=RETURNED, actor_id=actor_id)
        if problem:
            publish(damage_reported, return_id=return_id, borrow_id=borrow.id, item_id=borrow.item_id,
                    condition=condition, quantity=row.quantity, shortfall=shortfall)
        return row

    @staticmethod
    def reject_return(return_id: str, actor_id: str, reason: str) -> ReturnRequest:
        """Talep return_pending kalır; öğrenci yeni iade gönderebilir."""
        row = ReturnService._get(return_id)
        borrow = row.borrow_request
        require_approver(actor_id, borrow.item_department_id)

        if row.status != PENDING:
            raise InvalidTransition("İade talebi reddedilebilir durumda değil", current_state=row.status)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Red gerekçesi zorunlu")

        now = utcnow()
        with atomic():
            ok = ReturnRepo.resolve(
                row, status=RETURN_REJECTED, rejection_reason=reason,
                verified_by=actor_id, verified_at=now, updated_at=now,
            )
            if not ok or not BorrowRepo.detach_return(borrow, row.id):
                raise Conflict()
            AuditService.record(actor_id, "return_rejected", "return_request", row.id,
                                {"status": PENDING}, {"status": RETURN_REJECTED, "rejection_reason": reason})
            MessagingService.send_borrow_message(
                borrow, actor_id, "info", "İadeniz reddedildi",
                f"İade talebiniz reddedildi: {reason}. Lütfen iadeyi yeniden gönderiniz.", "return_rejected",
            )

        current_app.logger.info(f"[ReturnService] rejected return={return_id} by={actor_id}")
        MessagingService.dispatch_after_commit()
        publish(return_transitioned, return_id=return_id, borrow_id=borrow.id,
                old_status=RETURN_PENDING, new_status=RETURN_PENDING, actor_id=actor_id)
        return row

    @staticmethod
    def list_pending(actor_id: str):
        return ReturnRepo.list_pending(visible_department_ids(actor_id))

    @staticmethod
    def list_for_borrow(borrow_request_id: str):
        return ReturnRepo.list_for_borrow(borrow_request_id)
