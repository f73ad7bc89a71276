from sqlalchemy import update, select

from lablink.extensions import db
from lablink.models.item import Item, ItemUnit, BUCKET_COLUMNS, UNIT_RETIRED


class ItemRepo:
    @staticmethod
    def list_all(include_archived: bool = False):
        q = Item.query
        if not include_archived:
            q = q.filter(Item.archived_at.is_(None))
        return q.order_by(Item.name.asc()).all()

    @staticmethod
    def get(item_id: str):
        return db.session.get(Item, item_id)

    @staticmethod
    def get_by_code(code: str):
        return Item.query.filter_by(item_code=code).first()

    @staticmethod
    def add(item: Item):
        db.session.add(item)
        db.session.flush()
        return item

    @staticmethod
    def shift_buckets(item: Item, deltas: dict, total_delta: int = 0) -> bool:
        """
        Sayaçları tek satırlık koşullu UPDATE ile kaydırır.
        deltas: {"available": -2, "reserved": +2}
        Negatif her delta için "kolon >= adet" koşulu eklenir; satır
        eşleşmezse (stok yetmedi / yarış kaybedildi) False döner.
        """
        conditions = [Item.id == item.id]
        values = {}
        for bucket, delta in deltas.items():
            if not delta:
                continue
            column = getattr(Item, BUCKET_COLUMNS[bucket])
            if delta < 0:
                conditions.append(column >= -delta)
            values[BUCKET_COLUMNS[bucket]] = column + delta
        if total_delta:
            if total_delta < 0:
                conditions.append(Item.total_quantity >= -total_delta)
            values["total_quantity"] = Item.total_quantity + total_delta
        if not values:
            return True

        stmt = (
            update(Item)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.expire(item)
        return result.rowcount == 1

    # -----------------------------
    # Units
    # -----------------------------
    @staticmethod
    def get_unit(unit_id: str):
        return db.session.get(ItemUnit, unit_id)

    @staticmethod
    def get_unit_by_serial(serial: str):
        return ItemUnit.query.filter_by(serial_number=serial).first()

    @staticmethod
    def next_unit_number(item_id: str) -> int:
        last = db.session.execute(
            select(ItemUnit.unit_number)
            .where(ItemUnit.item_id == item_id)
            .order_by(ItemUnit.unit_number.desc())
            .limit(1)
        ).scalar()
        return (last or 0) + 1

    @staticmethod
    def count_live_units(item_id: str) -> int:
        return ItemUnit.query.filter(
            ItemUnit.item_id == item_id,
            ItemUnit.status != UNIT_RETIRED
        ).count()

    @staticmethod
    def unit_status_counts(item_id: str) -> dict:
        rows = db.session.execute(
            select(ItemUnit.status, db.func.count(ItemUnit.id))
            .where(ItemUnit.item_id == item_id, ItemUnit.status != UNIT_RETIRED)
            .group_by(ItemUnit.status)
        ).all()
        return {status: count for status, count in rows}

    @staticmethod
    def candidate_units(item_id: str, status: str, borrow_request_id: str | None = None, limit: int = 50):
        q = ItemUnit.query.filter(ItemUnit.item_id == item_id, ItemUnit.status == status)
        if borrow_request_id is not None:
            q = q.filter(ItemUnit.borrow_request_id == borrow_request_id)
        return q.order_by(ItemUnit.unit_number.asc()).limit(limit).all()

    @staticmethod
    def move_unit(unit: ItemUnit, from_status: str, **values) -> bool:
        """Tek unit için koşullu durum geçişi."""
        stmt = (
            update(ItemUnit)
            .where(ItemUnit.id == unit.id, ItemUnit.status == from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.expire(unit)
        return result.rowcount == 1
