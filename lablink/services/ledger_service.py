"""
Quantity ledger.

Every stock movement is one conditional UPDATE on the item row: the
decremented buckets are guarded with ``column >= qty`` so concurrent callers
cannot oversell. A caller that loses the race gets ``Conflict``. For unitized
items the matching units are moved one by one with the same compare-and-swap
shape, so per-status unit counts keep following the buckets.

None of these methods commit; the calling service owns the transaction.
"""
from flask import current_app

from lablink.errors import Conflict, InvalidTransition, NotFound, ValidationError
from lablink.extensions import db
from lablink.models.item import (
    Item, ItemUnit, BUCKET_AVAILABLE, BUCKET_RESERVED, BUCKET_ISSUED,
    BUCKET_DAMAGED, BUCKET_COLUMNS, UNIT_RETIRED,
)
from lablink.models.stock_reservation import StockReservation, HELD, RELEASED, ISSUED, RETURNED
from lablink.repositories.item_repo import ItemRepo
from lablink.repositories.reservation_repo import ReservationRepo
from lablink.services.identity_service import build_qr_payload
from lablink.utils.clock import utcnow


class QuantityLedger:
    @staticmethod
    def _item(item_id: str) -> Item:
        item = ItemRepo.get(item_id)
        if not item:
            raise NotFound("Ürün bulunamadı")
        return item

    @staticmethod
    def _check_qty(qty):
        if not isinstance(qty, int) or qty < 1:
            raise ValidationError("Adet en az 1 olmalı")

    @staticmethod
    def _move_units(item: Item, qty: int, from_status: str, owner_id=None, **values):
        if qty <= 0 or not ItemRepo.count_live_units(item.id):
            return
        moved = 0
        while moved < qty:
            candidates = ItemRepo.candidate_units(item.id, from_status, owner_id, limit=qty - moved)
            if not candidates:
                raise Conflict("Birim durumu başka bir işlemle değişti")
            for unit in candidates:
                if ItemRepo.move_unit(unit, from_status, **values):
                    moved += 1

    @staticmethod
    def _shift(item: Item, deltas: dict, total_delta: int = 0, message: str | None = None):
        if not ItemRepo.shift_buckets(item, deltas, total_delta):
            current_app.logger.info(f"[ledger] CAS lost item={item.id} deltas={deltas}")
            raise Conflict(message or "Stok başka bir işlem tarafından değiştirildi")

    # -----------------------------
    # Reservation lifecycle
    # -----------------------------
    @staticmethod
    def reserve(item_id: str, qty: int, request_id: str) -> StockReservation:
        QuantityLedger._check_qty(qty)
        existing = ReservationRepo.get_by_request(request_id)
        if existing:
            if existing.state == HELD:
                return existing
            raise InvalidTransition("Rezervasyon zaten kapanmış", current_state=existing.state)

        item = QuantityLedger._item(item_id)
        QuantityLedger._shift(
            item, {BUCKET_AVAILABLE: -qty, BUCKET_RESERVED: qty},
            message="Yeterli stok yok ya da stok başka bir talep tarafından ayrıldı",
        )
        QuantityLedger._move_units(
            item, qty, BUCKET_AVAILABLE,
            status=BUCKET_RESERVED, borrow_request_id=request_id,
        )
        row = ReservationRepo.add(StockReservation(request_id=request_id, item_id=item_id, quantity=qty, state=HELD))
        current_app.logger.info(f"[ledger] reserve item={item_id} qty={qty} request={request_id}")
        return row

    @staticmethod
    def release(item_id: str, qty: int, request_id: str):
        row = ReservationRepo.get_by_request(request_id)
        if row is None:
            current_app.logger.warning(f"[ledger] release: rezervasyon yok request={request_id}")
            return None
        if row.state == RELEASED:
            return row
        if row.state != HELD:
            raise InvalidTransition("Rezervasyon serbest bırakılamaz", current_state=row.state)
        if row.item_id != item_id or row.quantity != qty:
            raise ValidationError("Rezervasyon bilgisi talep ile uyuşmuyor")

        if not ReservationRepo.move(row, HELD, RELEASED):
            raise Conflict()
        item = QuantityLedger._item(item_id)
        QuantityLedger._shift(item, {BUCKET_RESERVED: -qty, BUCKET_AVAILABLE: qty})
        QuantityLedger._move_units(
            item, qty, BUCKET_RESERVED, request_id,
            status=BUCKET_AVAILABLE, borrow_request_id=None,
        )
        current_app.logger.info(f"[ledger] release item={item_id} qty={qty} request={request_id}")
        return row

    @staticmethod
    def commit_issue(item_id: str, qty: int, request_id: str, holder_id: str, due_date):
        row = ReservationRepo.get_by_request(request_id)
        if row is None:
            raise InvalidTransition("Talep için rezervasyon bulunamadı")
        if row.state == ISSUED:
            return row
        if row.state != HELD:
            raise InvalidTransition("Rezervasyon teslim edilemez", current_state=row.state)
        if row.quantity != qty:
            raise ValidationError("Teslim adedi rezervasyonla uyuşmuyor")

        if not ReservationRepo.move(row, HELD, ISSUED):
            raise Conflict()
        item = QuantityLedger._item(item_id)
        QuantityLedger._shift(item, {BUCKET_RESERVED: -qty, BUCKET_ISSUED: qty})
        QuantityLedger._move_units(
            item, qty, BUCKET_RESERVED, request_id,
            status=BUCKET_ISSUED, current_holder_id=holder_id,
            issued_date=utcnow(), due_date=due_date,
        )
        current_app.logger.info(f"[ledger] issue item={item_id} qty={qty} request={request_id} holder={holder_id}")
        return row

    @staticmethod
    def commit_return(item_id: str, qty: int, request_id: str, to_bucket: str,
                      shortfall: int = 0, condition: str | None = None):
        """
        qty adet issued -> to_bucket, eksik kalan shortfall adet issued -> damaged.
        """
        if to_bucket not in BUCKET_COLUMNS or to_bucket in (BUCKET_RESERVED, BUCKET_ISSUED):
            raise ValidationError(f"Geçersiz hedef kova: {to_bucket}")
        QuantityLedger._check_qty(qty)
        if shortfall < 0:
            raise ValidationError("Eksik adet negatif olamaz")

        row = ReservationRepo.get_by_request(request_id)
        if row is None or row.state != ISSUED:
            raise InvalidTransition("Teslim edilmiş stok bulunamadı", current_state=row.state if row else None)
        if row.quantity != qty + shortfall:
            raise ValidationError("İade adedi teslim edilen adetle uyuşmuyor")

        if not ReservationRepo.move(row, ISSUED, RETURNED):
            raise Conflict()

        deltas = {BUCKET_ISSUED: -(qty + shortfall)}
        deltas[to_bucket] = deltas.get(to_bucket, 0) + qty
        if shortfall:
            deltas[BUCKET_DAMAGED] = deltas.get(BUCKET_DAMAGED, 0) + shortfall

        item = QuantityLedger._item(item_id)
        QuantityLedger._shift(item, deltas)

        cleared = dict(borrow_request_id=None, current_holder_id=None, issued_date=None, due_date=None)
        QuantityLedger._move_units(
            item, qty, BUCKET_ISSUED, request_id,
            status=to_bucket, condition=condition or "good", **cleared,
        )
        QuantityLedger._move_units(
            item, shortfall, BUCKET_ISSUED, request_id,
            status=BUCKET_DAMAGED, condition="lost", **cleared,
        )
        current_app.logger.info(
            f"[ledger] return item={item_id} qty={qty} -> {to_bucket} shortfall={shortfall} request={request_id}"
        )
        return row

    # -----------------------------
    # Inspection
    # -----------------------------
    @staticmethod
    def snapshot(item_id: str) -> dict:
        item = QuantityLedger._item(item_id)
        data = item.buckets()
        data["total"] = item.total_quantity
        if ItemRepo.count_live_units(item.id):
            data["units"] = ItemRepo.unit_status_counts(item.id)
        return data

    @staticmethod
    def check_invariant(item: Item) -> bool:
        db.session.refresh(item)
        buckets = item.buckets()
        if any(v < 0 for v in buckets.values()):
            return False
        if sum(buckets.values()) != item.total_quantity:
            return False
        if ItemRepo.count_live_units(item.id):
            counts = ItemRepo.unit_status_counts(item.id)
            for bucket, value in buckets.items():
                if counts.get(bucket, 0) != value:
                    return False
        return True

    # -----------------------------
    # Stock & units
    # -----------------------------
    @staticmethod
    def _create_units(item: Item, count: int) -> list:
        created = []
        number = ItemRepo.next_unit_number(item.id)
        prefix = item.item_code or item.id[:8]
        for _ in range(count):
            unit = ItemUnit(
                item_id=item.id,
                unit_number=number,
                serial_number=f"{prefix}-{number:03d}",
                status=BUCKET_AVAILABLE,
                condition="good",
            )
            db.session.add(unit)
            db.session.flush()
            unit.qr_code_data = build_qr_payload(item, unit)
            created.append(unit)
            number += 1
        return created

    @staticmethod
    def unitize(item_id: str, count: int | None = None) -> list:
        """
        Stoktaki adetler için seri numaralı birim oluşturur.
        count verilmezse birimi olmayan stok kadar; fazlası yeni stok olarak eklenir.
        """
        item = QuantityLedger._item(item_id)
        live = ItemRepo.count_live_units(item.id)
        missing = item.total_quantity - live

        if live == 0 and missing > 0 and item.current_quantity != item.total_quantity:
            raise ValidationError("Ödünçte veya bakımda stok varken birimlere ayrılamaz")
        if count is None:
            count = missing
        if count < 1:
            raise ValidationError("Oluşturulacak birim yok")
        if count < missing:
            raise ValidationError("Birim sayısı mevcut stoktan az olamaz")

        extra = count - missing
        if extra:
            QuantityLedger._shift(item, {BUCKET_AVAILABLE: extra}, total_delta=extra)
        units = QuantityLedger._create_units(item, count)
        current_app.logger.info(f"[ledger] unitize item={item_id} units={count}")
        return units

    @staticmethod
    def add_stock(item_id: str, qty: int):
        QuantityLedger._check_qty(qty)
        item = QuantityLedger._item(item_id)
        if ItemRepo.count_live_units(item.id):
            return QuantityLedger.unitize(item_id, qty)
        QuantityLedger._shift(item, {BUCKET_AVAILABLE: qty}, total_delta=qty)
        current_app.logger.info(f"[ledger] add_stock item={item_id} qty={qty}")
        return []

    @staticmethod
    def retire_unit(unit_id: str) -> ItemUnit:
        unit = ItemRepo.get_unit(unit_id)
        if not unit:
            raise NotFound("Birim bulunamadı")
        status = unit.status
        if status == UNIT_RETIRED:
            return unit
        if status in (BUCKET_RESERVED, BUCKET_ISSUED):
            raise InvalidTransition("Ödünçteki birim arşivlenemez", current_state=status)

        item = unit.item
        if not ItemRepo.move_unit(unit, status, status=UNIT_RETIRED):
            raise Conflict()
        QuantityLedger._shift(item, {status: -1}, total_delta=-1)
        current_app.logger.info(f"[ledger] retire unit={unit_id} from={status}")
        return unit
