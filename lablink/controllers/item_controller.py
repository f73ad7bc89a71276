# lablink/controllers/item_controller.py

from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from lablink.services.identity_service import IdentityService, build_qr_payload
from lablink.services.item_service import ItemService
from lablink.services.ledger_service import QuantityLedger
from lablink.utils.decorators import role_required, current_user_id
from lablink.utils.request_data import json_body, parse_int, require_fields

item_bp = Blueprint("items", __name__)


def _item_dict(i):
    return {
        "id": i.id,
        "name": i.name,
        "description": i.description,
        "item_code": i.item_code,
        "category_id": i.category_id,
        "department_id": i.department_id,
        "storage_location": i.storage_location,
        "is_borrowable": i.is_borrowable,
        "current_quantity": i.current_quantity,
        "total_quantity": i.total_quantity,
        "reorder_threshold": i.reorder_threshold,
        "is_low_stock": i.is_low_stock,
        "status": i.status,
    }


def _unit_dict(u):
    return {
        "id": u.id,
        "item_id": u.item_id,
        "unit_number": u.unit_number,
        "serial_number": u.serial_number,
        "qr_code_data": u.qr_code_data,
        "status": u.status,
        "condition": u.condition,
    }


@item_bp.get("/")
@jwt_required()
def list_items():
    include_archived = request.args.get("include_archived") == "1"
    items = ItemService.list_items(include_archived)
    return jsonify({"success": True, "data": [_item_dict(i) for i in items]})


@item_bp.get("/<item_id>")
@jwt_required()
def get_item(item_id):
    i = ItemService.get_item(item_id)
    data = _item_dict(i)
    data["buckets"] = QuantityLedger.snapshot(i.id)
    data["qr_payload"] = build_qr_payload(i)
    return jsonify({"success": True, "data": data})


@item_bp.post("/")
@role_required("admin", "staff")
def create_item():
    data = json_body()
    i = ItemService.create_item(data, actor_id=current_user_id())
    return jsonify({"success": True, "id": i.id}), 201


@item_bp.put("/<item_id>")
@role_required("admin", "staff")
def update_item(item_id):
    i = ItemService.update_item(item_id, json_body(), actor_id=current_user_id())
    return jsonify({"success": True, "data": _item_dict(i)})


@item_bp.delete("/<item_id>")
@role_required("admin")
def archive_item(item_id):
    ItemService.archive_item(item_id, actor_id=current_user_id())
    return jsonify({"success": True})


@item_bp.post("/<item_id>/stock")
@role_required("admin", "staff")
def add_stock(item_id):
    data = json_body()
    i = ItemService.add_stock(item_id, parse_int(data.get("quantity"), "quantity"), actor_id=current_user_id())
    return jsonify({"success": True, "data": _item_dict(i)})


@item_bp.post("/<item_id>/unitize")
@role_required("admin", "staff")
def unitize(item_id):
    data = json_body()
    count = data.get("count")
    units = ItemService.unitize(
        item_id, parse_int(count, "count") if count is not None else None, actor_id=current_user_id()
    )
    return jsonify({"success": True, "data": [_unit_dict(u) for u in units]}), 201


@item_bp.delete("/units/<unit_id>")
@role_required("admin", "staff")
def retire_unit(unit_id):
    u = ItemService.retire_unit(unit_id, actor_id=current_user_id())
    return jsonify({"success": True, "data": _unit_dict(u)})


@item_bp.post("/scan")
@jwt_required()
def scan():
    data = json_body()
    require_fields(data, "payload")
    resolution = IdentityService.resolve(
        data["payload"],
        actor_id=current_user_id(),
        device_info=data.get("device_info") or {"user_agent": request.headers.get("User-Agent")},
    )
    return jsonify({"success": True, "data": resolution.to_dict()})


# -----------------------------
# Taxonomy
# -----------------------------
@item_bp.get("/departments")
@jwt_required()
def list_departments():
    rows = ItemService.list_departments()
    return jsonify({"success": True, "data": [
        {"id": d.id, "name": d.name, "location_building": d.location_building} for d in rows
    ]})


@item_bp.post("/departments")
@role_required("admin")
def create_department():
    data = json_body()
    d = ItemService.create_department(data.get("name"), data.get("location_building"))
    return jsonify({"success": True, "id": d.id}), 201


@item_bp.get("/categories")
@jwt_required()
def list_categories():
    rows = ItemService.list_categories()
    return jsonify({"success": True, "data": [
        {"id": c.id, "name": c.name, "description": c.description, "low_stock_threshold": c.low_stock_threshold}
        for c in rows
    ]})


@item_bp.post("/categories")
@role_required("admin")
def create_category():
    data = json_body()
    c = ItemService.create_category(
        data.get("name"), data.get("description"), parse_int(data.get("low_stock_threshold"), "low_stock_threshold", 5)
    )
    return jsonify({"success": True, "id": c.id}), 201
