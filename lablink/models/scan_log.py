from lablink.extensions import db
from lablink.utils.clock import utcnow


class ScanLog(db.Model):
    __tablename__ = "qr_scan_logs"

    id = db.Column(db.Integer, primary_key=True)

    item_id = db.Column(db.String(36), nullable=True, index=True)
    unit_id = db.Column(db.String(36), nullable=True)
    scanned_by = db.Column(db.String(36), nullable=True, index=True)

    # success / not_found / invalid
    scan_result = db.Column(db.String(20), nullable=False, default="success")
    raw_payload = db.Column(db.String(1000), nullable=True)
    device_info = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
