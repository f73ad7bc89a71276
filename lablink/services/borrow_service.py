from datetime import date, datetime

from flask import current_app

from lablink.errors import Conflict, Forbidden, InvalidTransition, NotFound, ValidationError
from lablink.models.borrow import BorrowRequest, PENDING, APPROVED, REJECTED, WITHDRAWN_REASON
from lablink.models.issued_item import IssuedItem
from lablink.repositories.borrow_repo import BorrowRepo
from lablink.repositories.item_repo import ItemRepo
from lablink.repositories.tx import atomic
from lablink.services.access_service import require_approver, visible_department_ids
from lablink.services.audit_service import AuditService
from lablink.services.events import borrow_transitioned, publish
from lablink.services.ledger_service import QuantityLedger
from lablink.services.messaging_service import MessagingService
from lablink.utils.clock import utcnow, today


class BorrowService:
    @staticmethod
    def _get(request_id: str) -> BorrowRequest:
        borrow = BorrowRepo.get(request_id)
        if not borrow:
            raise NotFound("Ödünç talebi bulunamadı")
        return borrow

    @staticmethod
    def _after_commit(borrow_id: str, old_status, new_status: str, actor_id: str):
        MessagingService.dispatch_after_commit()
        publish(borrow_transitioned, borrow_id=borrow_id, old_status=old_status,
                new_status=new_status, actor_id=actor_id)

    @staticmethod
    def create_request(student_id: str, item_id: str, quantity: int,
                       start_date: date, end_date: date, purpose: str | None = None) -> BorrowRequest:
        if not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Adet en az 1 olmalı")
        if not start_date or not end_date or start_date >= end_date:
            raise ValidationError("Başlangıç tarihi bitiş tarihinden önce olmalı")

        item = ItemRepo.get(item_id)
        if not item:
            raise NotFound("Ürün bulunamadı")
        if item.archived_at is not None:
            raise ValidationError("Arşivlenmiş ürün ödünç alınamaz")
        if not item.is_borrowable:
            raise ValidationError("Bu ürün ödünç verilemez")
        if quantity > item.current_quantity:
            raise ValidationError(f"Yeterli stok yok (mevcut: {item.current_quantity})")

        # tek commit noktası: talep + rezervasyon + outbox
        with atomic():
            borrow = BorrowRepo.add(BorrowRequest(
                item_id=item.id,
                student_id=student_id,
                requested_start_date=start_date,
                requested_end_date=end_date,
                purpose=purpose,
                quantity=quantity,
                status=PENDING,
                item_department_id=item.department_id,
            ))
            QuantityLedger.reserve(item.id, quantity, borrow.id)
            AuditService.record(student_id, "borrow_request_created", "borrow_request", borrow.id, None, {
                "item_id": item.id,
                "quantity": quantity,
                "requested_start_date": start_date,
                "requested_end_date": end_date,
                "status": PENDING,
            })
            MessagingService.notify_staff(
                item.department_id, "borrow_request", "Yeni ödünç talebi",
                f"'{item.name}' için {quantity} adet ödünç talebi oluşturuldu.",
                borrow.id, "borrow_request", actor_id=student_id,
            )

        current_app.logger.info(f"[BorrowService] created request={borrow.id} item={item.id} qty={quantity}")
        BorrowService._after_commit(borrow.id, None, PENDING, student_id)
        return borrow

    @staticmethod
    def approve(request_id: str, actor_id: str, pickup_location: str,
                collection_datetime: datetime | None = None, conditions: str | None = None,
                staff_message: str | None = None) -> BorrowRequest:
        borrow = BorrowService._get(request_id)
        require_approver(actor_id, borrow.item_department_id)

        if borrow.status == APPROVED:
            # tekrar gelen onay: yan etki yok
            return borrow
        if borrow.status != PENDING:
            raise InvalidTransition("Talep onaylanabilir durumda değil", current_state=borrow.status)
        pickup_location = (pickup_location or "").strip()
        if not pickup_location:
            raise ValidationError("Teslim alma yeri zorunlu")

        now = utcnow()
        with atomic():
            ok = BorrowRepo.transition(
                borrow, PENDING,
                status=APPROVED,
                approved_by=actor_id,
                approved_date=now,
                pickup_location=pickup_location,
                collection_datetime=collection_datetime,
                conditions=conditions,
                staff_message=staff_message,
                updated_at=now,
            )
            if not ok:
                raise Conflict()

            QuantityLedger.commit_issue(
                borrow.item_id, borrow.quantity, borrow.id, borrow.student_id, borrow.requested_end_date
            )
            BorrowRepo.add_issued(IssuedItem(
                item_id=borrow.item_id,
                borrow_request_id=borrow.id,
                quantity=borrow.quantity,
                issued_to=borrow.student_id,
                issued_by=actor_id,
                issued_date=now,
                due_date=borrow.requested_end_date,
            ))
            AuditService.record(actor_id, "borrow_request_approved", "borrow_request", borrow.id,
                                {"status": PENDING},
                                {"status": APPROVED, "pickup_location": pickup_location,
                                 "collection_datetime": collection_datetime, "due_date": borrow.requested_end_date})

            item_name = borrow.item.name if borrow.item else "Ekipman"
            body = staff_message or f"'{item_name}' talebiniz onaylandı. Lütfen belirtilen yerden teslim alınız."
            MessagingService.send_borrow_message(
                borrow, actor_id, "approval", "Ödünç talebiniz onaylandı", body, "borrow_approved",
                pickup_location=pickup_location, collection_datetime=collection_datetime, conditions=conditions,
            )

        current_app.logger.info(f"[BorrowService] approved request={request_id} by={actor_id}")
        BorrowService._after_commit(request_id, PENDING, APPROVED, actor_id)
        return borrow

    @staticmethod
    def reject(request_id: str, actor_id: str, reason: str) -> BorrowRequest:
        borrow = BorrowService._get(request_id)
        require_approver(actor_id, borrow.item_department_id)

        reason = (reason or "").strip()
        if borrow.status != PENDING:
            raise InvalidTransition("Talep reddedilebilir durumda değil", current_state=borrow.status)
        if not reason:
            raise ValidationError("Red gerekçesi zorunlu")

        with atomic():
            ok = BorrowRepo.transition(
                borrow, PENDING, status=REJECTED, rejection_reason=reason, updated_at=utcnow()
            )
            if not ok:
                raise Conflict()
            QuantityLedger.release(borrow.item_id, borrow.quantity, borrow.id)
            AuditService.record(actor_id, "borrow_request_rejected", "borrow_request", borrow.id,
                                {"status": PENDING}, {"status": REJECTED, "rejection_reason": reason})
            MessagingService.send_borrow_message(
                borrow, actor_id, "rejection", "Ödünç talebiniz reddedildi",
                f"Talebiniz reddedildi. Gerekçe: {reason}", "borrow_rejected",
            )

        current_app.logger.info(f"[BorrowService] rejected request={request_id} by={actor_id}")
        BorrowService._after_commit(request_id, PENDING, REJECTED, actor_id)
        return borrow

    @staticmethod
    def withdraw(request_id: str, actor_id: str) -> BorrowRequest:
        """Öğrenci kendi bekleyen talebini geri çeker (reddedildi + 'withdrawn')."""
        borrow = BorrowService._get(request_id)
        if borrow.student_id != actor_id:
            raise Forbidden("Bu talep size ait değil")
        if borrow.status != PENDING:
            raise InvalidTransition("Sadece bekleyen talepler geri çekilebilir", current_state=borrow.status)

        with atomic():
            ok = BorrowRepo.transition(
                borrow, PENDING, status=REJECTED, rejection_reason=WITHDRAWN_REASON, updated_at=utcnow()
            )
            if not ok:
                raise Conflict()
            QuantityLedger.release(borrow.item_id, borrow.quantity, borrow.id)
            AuditService.record(actor_id, "borrow_request_withdrawn", "borrow_request", borrow.id,
                                {"status": PENDING}, {"status": REJECTED, "rejection_reason": WITHDRAWN_REASON})
            MessagingService.notify_staff(
                borrow.item_department_id, "borrow_withdrawn", "Ödünç talebi geri çekildi",
                "Öğrenci bekleyen talebini geri çekti.", borrow.id, "borrow_request", actor_id=actor_id,
            )

        current_app.logger.info(f"[BorrowService] withdrawn request={request_id}")
        BorrowService._after_commit(request_id, PENDING, REJECTED, actor_id)
        return borrow

    # -----------------------------
    # Read side
    # -----------------------------
    @staticmethod
    def get_request(request_id: str, actor_id: str) -> BorrowRequest:
        borrow = BorrowService._get(request_id)
        if borrow.student_id == actor_id:
            return borrow
        departments = visible_department_ids(actor_id)
        if departments is None or borrow.item_department_id in departments:
            return borrow
        raise Forbidden("Bu talebi görüntüleme yetkiniz yok")

    @staticmethod
    def list_for_user(user_id: str):
        return BorrowRepo.list_by_user(user_id)

    @staticmethod
    def list_for_staff(actor_id: str, status: str | None = None):
        return BorrowRepo.list_all(status=status, department_ids=visible_department_ids(actor_id))

    @staticmethod
    def list_overdue(actor_id: str, on_date: date | None = None):
        """Gecikme saklanmaz; teslim tarihi geçmiş aktif IssuedItem'lardan türetilir."""
        departments = visible_department_ids(actor_id)
        rows = []
        for issued in BorrowRepo.find_overdue(on_date or today()):
            borrow = issued.borrow_request
            if departments is None or borrow.item_department_id in departments:
                rows.append(borrow)
        return rows
