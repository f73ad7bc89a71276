from lablink.extensions import db
from lablink.utils.clock import utcnow

HELD = "held"
RELEASED = "released"
ISSUED = "issued"
RETURNED = "returned"


class StockReservation(db.Model):
    """Talep başına tek rezervasyon satırı; reserve/release tekrarlarını yutar."""
    __tablename__ = "stock_reservations"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.String(36), unique=True, nullable=False)
    item_id = db.Column(db.String(36), db.ForeignKey("items.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # held / released / issued / returned
    state = db.Column(db.String(20), nullable=False, default=HELD)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
