from werkzeug.security import generate_password_hash, check_password_hash
from flask_jwt_extended import create_access_token

from lablink.errors import ValidationError, NotFound
from lablink.models.user import User
from lablink.repositories.user_repo import UserRepo

ROLES = ("admin", "staff", "student", "technician")


class AuthService:
    @staticmethod
    def register(username: str, email: str, password: str, role: str = "student", full_name: str | None = None):
        if role not in ROLES:
            raise ValidationError("Geçersiz rol")
        if UserRepo.get_by_username(username) or UserRepo.get_by_email(email):
            raise ValidationError("Kullanıcı adı veya e-posta zaten kayıtlı")

        user = User(
            username=username,
            email=email,
            full_name=full_name,
            password_hash=generate_password_hash(password),
            role=role
        )
        UserRepo.create(user)
        return user

    @staticmethod
    def login(username: str, password: str):
        user = UserRepo.get_by_username(username)
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            return None, None

        token = AuthService.issue_token(user)
        return token, user

    @staticmethod
    def issue_token(user: User) -> str:
        return create_access_token(
            identity=str(user.id),
            additional_claims={"role": user.role, "username": user.username}
        )

    @staticmethod
    def assign_department(user_id: str, department_id: str):
        if not UserRepo.get_by_id(user_id):
            raise NotFound("Kullanıcı bulunamadı")
        UserRepo.add_to_department(user_id, department_id)
