from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from lablink.services.borrow_service import BorrowService
from lablink.services.return_service import ReturnService
from lablink.utils.decorators import role_required, current_user_id
from lablink.utils.request_data import json_body, parse_int, parse_date, parse_datetime, require_fields

borrow_bp = Blueprint("borrow", __name__)


@borrow_bp.post("/")
@jwt_required()
def create_request():
    data = json_body()
    require_fields(data, "item_id", "requested_start_date", "requested_end_date")
    b = BorrowService.create_request(
        student_id=current_user_id(),
        item_id=data["item_id"],
        quantity=parse_int(data.get("quantity"), "quantity", 1),
        start_date=parse_date(data["requested_start_date"], "requested_start_date"),
        end_date=parse_date(data["requested_end_date"], "requested_end_date"),
        purpose=data.get("purpose"),
    )
    return jsonify({"success": True, "data": b.to_dict()}), 201


@borrow_bp.get("/my")
@jwt_required()
def my_requests():
    rows = BorrowService.list_for_user(current_user_id())
    return jsonify({"success": True, "data": [x.to_dict() for x in rows]})


@borrow_bp.get("/")
@role_required("admin", "staff")
def staff_requests():
    rows = BorrowService.list_for_staff(current_user_id(), status=request.args.get("status"))
    return jsonify({"success": True, "data": [x.to_dict() for x in rows]})


@borrow_bp.get("/overdue")
@role_required("admin", "staff")
def overdue_requests():
    rows = BorrowService.list_overdue(current_user_id())
    return jsonify({"success": True, "data": [x.to_dict() for x in rows]})


@borrow_bp.get("/<request_id>")
@jwt_required()
def get_request(request_id):
    b = BorrowService.get_request(request_id, current_user_id())
    data = b.to_dict()
    data["returns"] = [r.to_dict() for r in ReturnService.list_for_borrow(b.id)]
    return jsonify({"success": True, "data": data})


@borrow_bp.post("/<request_id>/approve")
@role_required("admin", "staff")
def approve(request_id):
    data = json_body()
    b = BorrowService.approve(
        request_id,
        actor_id=current_user_id(),
        pickup_location=data.get("pickup_location"),
        collection_datetime=parse_datetime(data.get("collection_datetime"), "collection_datetime"),
        conditions=data.get("conditions"),
        staff_message=data.get("message"),
    )
    return jsonify({"success": True, "data": b.to_dict()})


@borrow_bp.post("/<request_id>/reject")
@role_required("admin", "staff")
def reject(request_id):
    data = json_body()
    b = BorrowService.reject(request_id, actor_id=current_user_id(), reason=data.get("reason"))
    return jsonify({"success": True, "data": b.to_dict()})


@borrow_bp.post("/<request_id>/withdraw")
@jwt_required()
def withdraw(request_id):
    b = BorrowService.withdraw(request_id, actor_id=current_user_id())
    return jsonify({"success": True, "data": b.to_dict()})
