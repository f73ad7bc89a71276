from lablink.extensions import db
from lablink.utils.clock import utcnow, today
from lablink.utils.ids import new_id

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
RETURN_PENDING = "return_pending"
RETURNED = "returned"

TERMINAL_STATUSES = (REJECTED, RETURNED)

WITHDRAWN_REASON = "withdrawn"


class BorrowRequest(db.Model):
    __tablename__ = "borrow_requests"

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    item_id = db.Column(db.String(36), db.ForeignKey("items.id"), nullable=False, index=True)
    student_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)

    requested_start_date = db.Column(db.Date, nullable=False)
    requested_end_date = db.Column(db.Date, nullable=False)
    purpose = db.Column(db.Text, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    # pending / approved / rejected / return_pending / returned
    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)

    approved_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    approved_date = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    pickup_location = db.Column(db.String(255), nullable=True)
    collection_datetime = db.Column(db.DateTime, nullable=True)
    conditions = db.Column(db.Text, nullable=True)
    staff_message = db.Column(db.Text, nullable=True)

    # Oluşturma anındaki departman; item taşınsa da güncellenmez
    item_department_id = db.Column(db.String(36), db.ForeignKey("departments.id"), nullable=True, index=True)

    # Bekleyen iade talebi (en fazla bir tane)
    active_return_id = db.Column(db.String(36), nullable=True)
    actual_return_date = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    item = db.relationship("Item", backref="borrow_requests")
    student = db.relationship("User", foreign_keys=[student_id], backref="borrow_requests")
    approver = db.relationship("User", foreign_keys=[approved_by])

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_overdue(self, on_date=None) -> bool:
        """Saklanan bir durum değil; sorgu anında hesaplanır."""
        if self.status not in (APPROVED, RETURN_PENDING):
            return False
        return self.requested_end_date < (on_date or today())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "student_id": self.student_id,
            "requested_start_date": self.requested_start_date.isoformat(),
            "requested_end_date": self.requested_end_date.isoformat(),
            "purpose": self.purpose,
            "quantity": self.quantity,
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_date": self.approved_date.isoformat() if self.approved_date else None,
            "rejection_reason": self.rejection_reason,
            "pickup_location": self.pickup_location,
            "collection_datetime": self.collection_datetime.isoformat() if self.collection_datetime else None,
            "conditions": self.conditions,
            "item_department_id": self.item_department_id,
            "active_return_id": self.active_return_id,
            "actual_return_date": self.actual_return_date.isoformat() if self.actual_return_date else None,
            "is_overdue": self.is_overdue(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
