from sqlalchemy import update

from lablink.extensions import db
from lablink.models.borrow import BorrowRequest
from lablink.models.return_request import ReturnRequest, PENDING


class ReturnRepo:
    @staticmethod
    def get(return_id: str):
        return db.session.get(ReturnRequest, return_id)

    @staticmethod
    def list_for_borrow(borrow_request_id: str):
        return ReturnRequest.query.filter_by(borrow_request_id=borrow_request_id).order_by(ReturnRequest.created_at.asc()).all()

    @staticmethod
    def list_pending(department_ids: list | None = None):
        q = ReturnRequest.query.filter(ReturnRequest.status == PENDING)
        if department_ids is not None:
            q = q.join(BorrowRequest, ReturnRequest.borrow_request_id == BorrowRequest.id).filter(
                BorrowRequest.item_department_id.in_(department_ids)
            )
        return q.order_by(ReturnRequest.created_at.asc()).all()

    @staticmethod
    def add(row: ReturnRequest):
        db.session.add(row)
        db.session.flush()
        return row

    @staticmethod
    def resolve(row: ReturnRequest, **values) -> bool:
        stmt = (
            update(ReturnRequest)
            .where(ReturnRequest.id == row.id, ReturnRequest.status == PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.expire(row)
        return result.rowcount == 1
