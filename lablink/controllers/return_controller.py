from flask import Blueprint, jsonify

from flask_jwt_extended import jwt_required

from lablink.services.return_service import ReturnService
from lablink.utils.decorators import role_required, current_user_id
from lablink.utils.request_data import json_body, parse_int, parse_datetime, require_fields

return_bp = Blueprint("returns", __name__)


@return_bp.post("/")
@jwt_required()
def submit_return():
    data = json_body()
    require_fields(data, "borrow_request_id", "item_condition", "return_image_url")
    r = ReturnService.submit_return(
        data["borrow_request_id"],
        actor_id=current_user_id(),
        quantity=parse_int(data.get("quantity"), "quantity", 1),
        item_condition=data["item_condition"],
        return_image_url=data["return_image_url"],
        condition_notes=data.get("condition_notes"),
        notes=data.get("notes"),
        return_datetime=parse_datetime(data.get("return_datetime"), "return_datetime"),
    )
    return jsonify({"success": True, "data": r.to_dict()}), 201


@return_bp.get("/pending")
@role_required("admin", "staff")
def pending_returns():
    rows = ReturnService.list_pending(current_user_id())
    return jsonify({"success": True, "data": [r.to_dict() for r in rows]})


@return_bp.post("/<return_id>/verify")
@role_required("admin", "staff")
def verify(return_id):
    r = ReturnService.verify_return(return_id, actor_id=current_user_id())
    return jsonify({"success": True, "data": r.to_dict()})


@return_bp.post("/<return_id>/reject")
@role_required("admin", "staff")
def reject(return_id):
    data = json_body()
    r = ReturnService.reject_return(return_id, actor_id=current_user_id(), reason=data.get("reason"))
    return jsonify({"success": True, "data": r.to_dict()})
