from lablink.extensions import db
from lablink.utils.clock import utcnow
from lablink.utils.ids import new_id


class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), unique=True, nullable=False)
    location_building = db.Column(db.String(200), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    parent_category_id = db.Column(db.String(36), db.ForeignKey("categories.id"), nullable=True)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
