from lablink.extensions import db
from lablink.utils.clock import utcnow
from lablink.utils.ids import new_id


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=True, index=True)
    full_name = db.Column(db.String(200), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)

    # admin / staff / student / technician
    role = db.Column(db.String(20), nullable=False, default="student")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    departments = db.relationship("UserDepartment", backref="user", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        return self.full_name or self.username


class UserDepartment(db.Model):
    __tablename__ = "user_departments"
    __table_args__ = (db.UniqueConstraint("user_id", "department_id", name="uq_user_department"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    department_id = db.Column(db.String(36), db.ForeignKey("departments.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
