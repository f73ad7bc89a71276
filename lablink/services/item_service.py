from flask import current_app

from lablink.errors import NotFound, ValidationError, InvalidTransition
from lablink.extensions import db
from lablink.models.department import Department, Category
from lablink.models.item import Item
from lablink.repositories.item_repo import ItemRepo
from lablink.repositories.tx import atomic
from lablink.services.audit_service import AuditService
from lablink.services.ledger_service import QuantityLedger
from lablink.services.messaging_service import MessagingService
from lablink.utils.clock import utcnow
from lablink.utils.request_data import parse_bool, parse_int

EDITABLE_FIELDS = ("name", "description", "storage_location", "category_id", "is_borrowable", "reorder_threshold")


class ItemService:
    @staticmethod
    def list_items(include_archived: bool = False):
        return ItemRepo.list_all(include_archived)

    @staticmethod
    def get_item(item_id: str):
        item = ItemRepo.get(item_id)
        if not item:
            raise NotFound("Ürün bulunamadı")
        return item

    @staticmethod
    def create_item(data: dict, actor_id: str | None = None):
        name = (data.get("name") or "").strip()
        department_id = data.get("department_id")
        if not name or not department_id:
            raise ValidationError("name ve department_id zorunlu")
        if not db.session.get(Department, department_id):
            raise NotFound("Departman bulunamadı")

        code = (data.get("item_code") or "").strip() or None
        if code and ItemRepo.get_by_code(code):
            raise ValidationError("Bu ürün kodu zaten kullanılıyor")

        try:
            quantity = int(data.get("quantity", 0))
            threshold = int(data.get("reorder_threshold", 1))
        except (TypeError, ValueError):
            raise ValidationError("quantity ve reorder_threshold sayı olmalı")
        if quantity < 0:
            raise ValidationError("quantity negatif olamaz")

        with atomic():
            item = ItemRepo.add(Item(
                name=name,
                description=data.get("description"),
                item_code=code,
                category_id=data.get("category_id"),
                department_id=department_id,
                storage_location=data.get("storage_location"),
                is_borrowable=parse_bool(data.get("is_borrowable", True), "is_borrowable"),
                current_quantity=quantity,
                total_quantity=quantity,
                reorder_threshold=threshold,
                created_by=actor_id,
            ))
            AuditService.record(actor_id, "item_created", "item", item.id, None, {
                "name": name, "item_code": code, "quantity": quantity, "department_id": department_id,
            })

        current_app.logger.info(f"[ItemService] created item={item.id} code={code}")
        MessagingService.dispatch_after_commit()
        return item

    @staticmethod
    def _clean_fields(data: dict) -> dict:
        """Düzenlenebilir alanları tipine çevirir; hiçbir alan yazılmadan önce hepsi kontrol edilir."""
        clean = {}
        for key in EDITABLE_FIELDS:
            if key not in data:
                continue
            value = data[key]
            if key == "name":
                value = value.strip() if isinstance(value, str) else ""
                if not value:
                    raise ValidationError("name boş olamaz")
            elif key == "is_borrowable":
                value = parse_bool(value, key)
            elif key == "reorder_threshold":
                value = parse_int(value, key)
                if value < 0:
                    raise ValidationError("reorder_threshold negatif olamaz")
            elif key == "category_id":
                if value and not db.session.get(Category, value):
                    raise NotFound("Kategori bulunamadı")
                value = value or None
            clean[key] = value
        return clean

    @staticmethod
    def update_item(item_id: str, data: dict, actor_id: str | None = None):
        """Sadece katalog bilgisi; adetler ledger üzerinden değişir."""
        item = ItemService.get_item(item_id)
        fields = ItemService._clean_fields(data)
        old, new = {}, {}
        for key, value in fields.items():
            if getattr(item, key) != value:
                old[key] = getattr(item, key)
                new[key] = value
                setattr(item, key, value)

        if new:
            with atomic():
                AuditService.record(actor_id, "item_updated", "item", item.id, old, new)
            MessagingService.dispatch_after_commit()
        return item

    @staticmethod
    def archive_item(item_id: str, actor_id: str | None = None):
        item = ItemService.get_item(item_id)
        if item.archived_at is not None:
            return item
        if item.reserved_quantity or item.issued_quantity:
            raise InvalidTransition("Ödünçte veya rezervde stok varken arşivlenemez", current_state=item.status)

        with atomic():
            item.archived_at = utcnow()
            AuditService.record(actor_id, "item_archived", "item", item.id, None, {"archived_at": item.archived_at})
        MessagingService.dispatch_after_commit()
        return item

    @staticmethod
    def add_stock(item_id: str, quantity: int, actor_id: str | None = None):
        item = ItemService.get_item(item_id)
        with atomic():
            before = item.total_quantity
            QuantityLedger.add_stock(item.id, quantity)
            AuditService.record(actor_id, "stock_added", "item", item.id,
                                {"total_quantity": before}, {"total_quantity": before + quantity})
        MessagingService.dispatch_after_commit()
        return item

    @staticmethod
    def unitize(item_id: str, count: int | None = None, actor_id: str | None = None):
        item = ItemService.get_item(item_id)
        with atomic():
            units = QuantityLedger.unitize(item.id, count)
            AuditService.record(actor_id, "item_unitized", "item", item.id, None, {"units": len(units)})
        MessagingService.dispatch_after_commit()
        return units

    @staticmethod
    def retire_unit(unit_id: str, actor_id: str | None = None):
        with atomic():
            unit = QuantityLedger.retire_unit(unit_id)
            AuditService.record(actor_id, "unit_retired", "item_unit", unit.id, None, {"status": unit.status})
        MessagingService.dispatch_after_commit()
        return unit

    # -----------------------------
    # Taxonomy
    # -----------------------------
    @staticmethod
    def list_departments():
        return Department.query.filter_by(is_active=True).order_by(Department.name.asc()).all()

    @staticmethod
    def create_department(name: str, location_building: str | None = None):
        name = (name or "").strip()
        if not name:
            raise ValidationError("name zorunlu")
        if Department.query.filter_by(name=name).first():
            raise ValidationError("Bu departman zaten kayıtlı")
        dept = Department(name=name, location_building=location_building)
        db.session.add(dept)
        db.session.commit()
        return dept

    @staticmethod
    def list_categories():
        return Category.query.order_by(Category.name.asc()).all()

    @staticmethod
    def create_category(name: str, description: str | None = None, low_stock_threshold: int = 5):
        name = (name or "").strip()
        if not name:
            raise ValidationError("name zorunlu")
        cat = Category(name=name, description=description, low_stock_threshold=low_stock_threshold)
        db.session.add(cat)
        db.session.commit()
        return cat
