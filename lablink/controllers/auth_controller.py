from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required, get_jwt

from lablink.repositories.user_repo import UserRepo
from lablink.services.auth_service import AuthService
from lablink.utils.decorators import role_required, current_user_id
from lablink.utils.request_data import json_body

auth_bp = Blueprint("auth", __name__)


@auth_bp.post("/register", endpoint="auth_register")
def register():
    data = json_body()

    username = (data.get("username") or "").strip()
    email = (data.get("email") or "").strip()
    password = (data.get("password") or "").strip()

    if not username or not email or not password:
        return jsonify({"success": False, "message": "username/email/password zorunlu"}), 400

    user = AuthService.register(
        username=username,
        email=email,
        password=password,
        full_name=data.get("full_name"),
        role="student"  # dışarıdan role alma
    )
    return jsonify({"success": True, "id": user.id, "username": user.username, "role": user.role}), 201


@auth_bp.post("/users", endpoint="auth_create_user")
@role_required("admin")
def create_user():
    """admin: staff / technician hesabı açar."""
    data = json_body()
    user = AuthService.register(
        username=(data.get("username") or "").strip(),
        email=(data.get("email") or "").strip(),
        password=(data.get("password") or "").strip(),
        role=data.get("role", "staff"),
        full_name=data.get("full_name"),
    )
    for department_id in data.get("department_ids") or []:
        AuthService.assign_department(user.id, department_id)
    return jsonify({"success": True, "id": user.id, "role": user.role}), 201


@auth_bp.post("/users/<user_id>/departments", endpoint="auth_assign_department")
@role_required("admin")
def assign_department(user_id):
    data = json_body()
    department_id = data.get("department_id")
    if not department_id:
        return jsonify({"success": False, "message": "department_id zorunlu"}), 400
    AuthService.assign_department(user_id, department_id)
    return jsonify({"success": True})


@auth_bp.post("/login", endpoint="auth_login")
def login():
    data = json_body()
    token, user = AuthService.login(
        (data.get("username") or "").strip(),
        (data.get("password") or "").strip()
    )
    if not token:
        return jsonify({"success": False, "message": "Hatalı kullanıcı adı veya şifre"}), 401
    return jsonify({
        "success": True,
        "access_token": token,
        "user": {"id": user.id, "username": user.username, "role": user.role}
    })


@auth_bp.get("/me", endpoint="auth_me")
@jwt_required()
def me():
    user_id = current_user_id()
    claims = get_jwt()
    user = UserRepo.get_by_id(user_id)
    if not user:
        return jsonify({"success": False, "message": "Kullanıcı bulunamadı"}), 404

    return jsonify({
        "success": True,
        "user": {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "full_name": user.full_name,
            "role": claims.get("role", user.role),
            "department_ids": UserRepo.department_ids(user.id),
        }
    })
