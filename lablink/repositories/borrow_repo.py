from datetime import date

from sqlalchemy import update

from lablink.extensions import db
from lablink.models.borrow import BorrowRequest, APPROVED, RETURN_PENDING
from lablink.models.issued_item import IssuedItem, ACTIVE


class BorrowRepo:
    @staticmethod
    def get(request_id: str):
        return db.session.get(BorrowRequest, request_id)

    @staticmethod
    def list_by_user(user_id: str):
        return BorrowRequest.query.filter_by(student_id=user_id).order_by(BorrowRequest.created_at.desc()).all()

    @staticmethod
    def list_all(status: str | None = None, department_ids: list | None = None):
        q = BorrowRequest.query
        if status:
            q = q.filter(BorrowRequest.status == status)
        if department_ids is not None:
            q = q.filter(BorrowRequest.item_department_id.in_(department_ids))
        return q.order_by(BorrowRequest.created_at.desc()).all()

    @staticmethod
    def add(borrow: BorrowRequest):
        db.session.add(borrow)
        db.session.flush()
        return borrow

    @staticmethod
    def transition(borrow: BorrowRequest, expected, **values) -> bool:
        """
        status hâlâ beklenen değerlerden biriyse günceller (compare-and-swap).
        Yarışı kaybeden çağıran False alır.
        """
        if isinstance(expected, str):
            expected = (expected,)
        stmt = (
            update(BorrowRequest)
            .where(BorrowRequest.id == borrow.id, BorrowRequest.status.in_(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.expire(borrow)
        return result.rowcount == 1

    @staticmethod
    def attach_return(borrow: BorrowRequest, return_id: str) -> bool:
        """Bekleyen iade yoksa iadeyi bağlar ve talebi return_pending yapar."""
        stmt = (
            update(BorrowRequest)
            .where(
                BorrowRequest.id == borrow.id,
                BorrowRequest.status.in_((APPROVED, RETURN_PENDING)),
                BorrowRequest.active_return_id.is_(None),
            )
            .values(status=RETURN_PENDING, active_return_id=return_id)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.expire(borrow)
        return result.rowcount == 1

    @staticmethod
    def detach_return(borrow: BorrowRequest, return_id: str) -> bool:
        stmt = (
            update(BorrowRequest)
            .where(BorrowRequest.id == borrow.id, BorrowRequest.active_return_id == return_id)
            .values(active_return_id=None)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.expire(borrow)
        return result.rowcount == 1

    # -----------------------------
    # Issued items
    # -----------------------------
    @staticmethod
    def get_issued(borrow_request_id: str):
        return IssuedItem.query.filter_by(borrow_request_id=borrow_request_id).first()

    @staticmethod
    def add_issued(issued: IssuedItem):
        db.session.add(issued)
        db.session.flush()
        return issued

    @staticmethod
    def find_overdue(on_date: date):
        return IssuedItem.query.filter(
            IssuedItem.status == ACTIVE,
            IssuedItem.returned_date.is_(None),
            IssuedItem.due_date < on_date
        ).order_by(IssuedItem.due_date.asc()).all()
