from lablink.models.user import User, UserDepartment
from lablink.extensions import db


class UserRepo:
    @staticmethod
    def get_by_username(username: str):
        return User.query.filter_by(username=username).first()

    @staticmethod
    def get_by_email(email: str):
        return User.query.filter_by(email=email).first()

    @staticmethod
    def get_by_id(user_id: str):
        return db.session.get(User, user_id)

    @staticmethod
    def create(user: User):
        db.session.add(user)
        db.session.commit()
        return user

    @staticmethod
    def department_ids(user_id: str) -> list:
        rows = UserDepartment.query.filter_by(user_id=user_id).all()
        return [r.department_id for r in rows]

    @staticmethod
    def is_member(user_id: str, department_id: str) -> bool:
        return UserDepartment.query.filter_by(user_id=user_id, department_id=department_id).first() is not None

    @staticmethod
    def add_to_department(user_id: str, department_id: str):
        if UserDepartment.query.filter_by(user_id=user_id, department_id=department_id).first():
            return
        db.session.add(UserDepartment(user_id=user_id, department_id=department_id))
        db.session.commit()

    @staticmethod
    def admin_ids() -> list:
        return [u.id for u in User.query.filter_by(role="admin", is_active=True).all()]

    @staticmethod
    def department_staff_ids(department_id: str) -> list:
        rows = (
            User.query
            .join(UserDepartment, UserDepartment.user_id == User.id)
            .filter(UserDepartment.department_id == department_id, User.role == "staff", User.is_active.is_(True))
            .all()
        )
        return [u.id for u in rows]
