from lablink.extensions import db
from lablink.utils.clock import utcnow
from lablink.utils.ids import new_id

# Stok kovaları: Item satırındaki sayaç kolonları
BUCKET_AVAILABLE = "available"
BUCKET_RESERVED = "reserved"
BUCKET_ISSUED = "issued"
BUCKET_MAINTENANCE = "maintenance"
BUCKET_DAMAGED = "damaged"

BUCKET_COLUMNS = {
    BUCKET_AVAILABLE: "current_quantity",
    BUCKET_RESERVED: "reserved_quantity",
    BUCKET_ISSUED: "issued_quantity",
    BUCKET_MAINTENANCE: "maintenance_quantity",
    BUCKET_DAMAGED: "damaged_quantity",
}

UNIT_RETIRED = "retired"
UNIT_STATUSES = tuple(BUCKET_COLUMNS) + (UNIT_RETIRED,)


class Item(db.Model):
    __tablename__ = "items"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    item_code = db.Column(db.String(64), unique=True, nullable=True, index=True)

    category_id = db.Column(db.String(36), db.ForeignKey("categories.id"), nullable=True, index=True)
    department_id = db.Column(db.String(36), db.ForeignKey("departments.id"), nullable=False, index=True)

    storage_location = db.Column(db.String(255), nullable=True)
    is_borrowable = db.Column(db.Boolean, nullable=False, default=True)

    # current_quantity = raftaki (ödünç verilebilir) adet
    current_quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)
    issued_quantity = db.Column(db.Integer, nullable=False, default=0)
    maintenance_quantity = db.Column(db.Integer, nullable=False, default=0)
    damaged_quantity = db.Column(db.Integer, nullable=False, default=0)
    total_quantity = db.Column(db.Integer, nullable=False, default=0)

    reorder_threshold = db.Column(db.Integer, nullable=False, default=1)

    created_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    archived_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.CheckConstraint("current_quantity >= 0", name="ck_items_current_nonneg"),
        db.CheckConstraint("reserved_quantity >= 0", name="ck_items_reserved_nonneg"),
        db.CheckConstraint("issued_quantity >= 0", name="ck_items_issued_nonneg"),
        db.CheckConstraint("maintenance_quantity >= 0", name="ck_items_maintenance_nonneg"),
        db.CheckConstraint("damaged_quantity >= 0", name="ck_items_damaged_nonneg"),
    )

    department = db.relationship("Department")
    category = db.relationship("Category")
    units = db.relationship("ItemUnit", backref="item", order_by="ItemUnit.unit_number")

    @property
    def is_low_stock(self) -> bool:
        return self.current_quantity <= (self.reorder_threshold or 0)

    @property
    def status(self) -> str:
        """Listeleme için türetilmiş durum; saklanmaz."""
        if self.archived_at is not None:
            return "archived"
        if self.current_quantity > 0:
            return "available"
        if self.issued_quantity or self.reserved_quantity:
            return "borrowed"
        if self.maintenance_quantity:
            return "under_maintenance"
        if self.damaged_quantity:
            return "damaged"
        return "available"

    def buckets(self) -> dict:
        return {bucket: getattr(self, column) or 0 for bucket, column in BUCKET_COLUMNS.items()}


class ItemUnit(db.Model):
    __tablename__ = "item_units"
    __table_args__ = (db.UniqueConstraint("item_id", "unit_number", name="uq_item_unit_number"),)

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    item_id = db.Column(db.String(36), db.ForeignKey("items.id"), nullable=False, index=True)

    unit_number = db.Column(db.Integer, nullable=False)
    serial_number = db.Column(db.String(100), unique=True, nullable=False, index=True)
    qr_code_data = db.Column(db.Text, nullable=True)

    # available / reserved / issued / maintenance / damaged / retired
    status = db.Column(db.String(30), nullable=False, default=BUCKET_AVAILABLE, index=True)
    condition = db.Column(db.String(30), nullable=False, default="good")

    current_holder_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    borrow_request_id = db.Column(db.String(36), db.ForeignKey("borrow_requests.id"), nullable=True, index=True)
    issued_date = db.Column(db.DateTime, nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
