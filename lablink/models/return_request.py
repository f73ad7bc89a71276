from lablink.extensions import db
from lablink.utils.clock import utcnow
from lablink.utils.ids import new_id

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

CONDITIONS = ("good", "minor_wear", "damaged", "missing_parts", "lost")
PROBLEM_CONDITIONS = ("damaged", "missing_parts", "lost")


class ReturnRequest(db.Model):
    __tablename__ = "return_requests"

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    borrow_request_id = db.Column(db.String(36), db.ForeignKey("borrow_requests.id"), nullable=False, index=True)
    student_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    item_id = db.Column(db.String(36), db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    return_datetime = db.Column(db.DateTime, nullable=False, default=utcnow)
    item_condition = db.Column(db.String(20), nullable=False, default="good")
    condition_notes = db.Column(db.Text, nullable=True)
    return_image_url = db.Column(db.Text, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    # pending / approved / rejected
    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)
    verified_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    borrow_request = db.relationship("BorrowRequest", backref="return_requests")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "borrow_request_id": self.borrow_request_id,
            "student_id": self.student_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "return_datetime": self.return_datetime.isoformat(),
            "item_condition": self.item_condition,
            "condition_notes": self.condition_notes,
            "return_image_url": self.return_image_url,
            "notes": self.notes,
            "status": self.status,
            "verified_by": self.verified_by,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "rejection_reason": self.rejection_reason,
        }
