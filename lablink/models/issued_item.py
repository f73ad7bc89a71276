from lablink.extensions import db
from lablink.utils.clock import utcnow, today
from lablink.utils.ids import new_id

ACTIVE = "active"
RETURNED = "returned"


class IssuedItem(db.Model):
    """Elde fiilen bulunan stok; aktif ödünç sayılarının tek kaynağı."""
    __tablename__ = "issued_items"

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    item_id = db.Column(db.String(36), db.ForeignKey("items.id"), nullable=False, index=True)
    borrow_request_id = db.Column(db.String(36), db.ForeignKey("borrow_requests.id"), nullable=False, unique=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    issued_to = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    issued_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
    issued_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    due_date = db.Column(db.Date, nullable=False)
    returned_date = db.Column(db.DateTime, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=ACTIVE, index=True)

    borrow_request = db.relationship("BorrowRequest", backref=db.backref("issued_item", uselist=False))

    def is_overdue(self, on_date=None) -> bool:
        return self.status == ACTIVE and self.due_date < (on_date or today())
