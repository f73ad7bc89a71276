from flask import current_app

from lablink.errors import Forbidden
from lablink.repositories.user_repo import UserRepo


class AccessPolicy:
    """Staff seviyesindeki geçişler için yetki kontrolü."""

    def can_approve(self, actor_id: str, department_id: str | None) -> bool:
        raise NotImplementedError


class DepartmentAccessPolicy(AccessPolicy):
    """admin her departmanda yetkili; staff sadece üyesi olduğu departmanda."""

    def can_approve(self, actor_id: str, department_id: str | None) -> bool:
        user = UserRepo.get_by_id(actor_id)
        if not user or not user.is_active:
            return False
        if user.role == "admin":
            return True
        if user.role != "staff" or not department_id:
            return False
        return UserRepo.is_member(actor_id, department_id)


def get_access_policy() -> AccessPolicy:
    return current_app.extensions.get("access_policy") or DepartmentAccessPolicy()


def require_approver(actor_id: str, department_id: str | None):
    if not get_access_policy().can_approve(actor_id, department_id):
        current_app.logger.info(f"[access] denied actor={actor_id} department={department_id}")
        raise Forbidden("Bu departmanın talepleri üzerinde yetkiniz yok")


def visible_department_ids(actor_id: str):
    """None = kısıt yok (admin)."""
    user = UserRepo.get_by_id(actor_id)
    if user and user.role == "admin":
        return None
    return UserRepo.department_ids(actor_id)
