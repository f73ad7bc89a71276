from sqlalchemy import update

from lablink.extensions import db
from lablink.models.stock_reservation import StockReservation


class ReservationRepo:
    @staticmethod
    def get_by_request(request_id: str):
        return StockReservation.query.filter_by(request_id=request_id).first()

    @staticmethod
    def add(row: StockReservation):
        db.session.add(row)
        db.session.flush()
        return row

    @staticmethod
    def move(row: StockReservation, from_state: str, to_state: str) -> bool:
        stmt = (
            update(StockReservation)
            .where(StockReservation.id == row.id, StockReservation.state == from_state)
            .values(state=to_state)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.expire(row)
        return result.rowcount == 1
