import pytest

from lablink import create_app
from lablink.config import TestConfig
from lablink.errors import Conflict, ValidationError, InvalidTransition
from lablink.extensions import db
from lablink.models.department import Department
from lablink.models.item import Item, ItemUnit
from lablink.models.stock_reservation import StockReservation
from lablink.repositories.tx import atomic
from lablink.services.ledger_service import QuantityLedger


def _buckets(item):
    db.session.refresh(item)
    return item.buckets()


def test_reserve_moves_stock_and_keeps_invariant(item):
    with atomic():
        QuantityLedger.reserve(item.id, 2, "req-1")

    assert _buckets(item)["available"] == 0
    assert _buckets(item)["reserved"] == 2
    assert QuantityLedger.check_invariant(item)


def test_reserve_is_idempotent_per_request(item):
    with atomic():
        QuantityLedger.reserve(item.id, 1, "req-1")
    with atomic():
        QuantityLedger.reserve(item.id, 1, "req-1")

    assert _buckets(item)["reserved"] == 1
    assert StockReservation.query.filter_by(request_id="req-1").count() == 1


def test_two_reserves_for_last_unit_one_conflicts(make_item):
    item = make_item(quantity=1)
    with atomic():
        QuantityLedger.reserve(item.id, 1, "req-a")

    with pytest.raises(Conflict):
        with atomic():
            QuantityLedger.reserve(item.id, 1, "req-b")

    assert _buckets(item) == {"available": 0, "reserved": 1, "issued": 0, "maintenance": 0, "damaged": 0}
    assert StockReservation.query.filter_by(request_id="req-b").first() is None


def test_release_restores_stock_and_is_idempotent(item):
    with atomic():
        QuantityLedger.reserve(item.id, 2, "req-1")
    with atomic():
        QuantityLedger.release(item.id, 2, "req-1")
    with atomic():
        QuantityLedger.release(item.id, 2, "req-1")

    assert _buckets(item)["available"] == 2
    assert _buckets(item)["reserved"] == 0
    assert QuantityLedger.check_invariant(item)


def test_released_reservation_cannot_be_issued(item):
    with atomic():
        QuantityLedger.reserve(item.id, 1, "req-1")
        QuantityLedger.release(item.id, 1, "req-1")

    with pytest.raises(InvalidTransition):
        with atomic():
            QuantityLedger.commit_issue(item.id, 1, "req-1", "holder", None)


def test_return_with_shortfall_goes_to_damaged(item):
    with atomic():
        QuantityLedger.reserve(item.id, 2, "req-1")
        QuantityLedger.commit_issue(item.id, 2, "req-1", "holder", None)
    assert _buckets(item)["issued"] == 2

    with atomic():
        QuantityLedger.commit_return(item.id, 1, "req-1", "available", shortfall=1)

    assert _buckets(item) == {"available": 1, "reserved": 0, "issued": 0, "maintenance": 0, "damaged": 1}
    assert QuantityLedger.check_invariant(item)


def test_unitized_item_moves_units_with_buckets(make_item):
    item = make_item(quantity=3)
    with atomic():
        units = QuantityLedger.unitize(item.id)
    assert len(units) == 3
    assert [u.serial_number for u in units] == ["ITM-1-001", "ITM-1-002", "ITM-1-003"]

    with atomic():
        QuantityLedger.reserve(item.id, 2, "req-1")
    reserved = ItemUnit.query.filter_by(item_id=item.id, status="reserved").all()
    assert len(reserved) == 2
    assert {u.borrow_request_id for u in reserved} == {"req-1"}
    assert QuantityLedger.check_invariant(item)

    with atomic():
        QuantityLedger.commit_issue(item.id, 2, "req-1", "holder-1", None)
    issued = ItemUnit.query.filter_by(item_id=item.id, status="issued").all()
    assert {u.current_holder_id for u in issued} == {"holder-1"}

    with atomic():
        QuantityLedger.commit_return(item.id, 2, "req-1", "maintenance", condition="missing_parts")

    snap = QuantityLedger.snapshot(item.id)
    assert snap["maintenance"] == 2
    assert snap["units"] == {"available": 1, "maintenance": 2}
    assert QuantityLedger.check_invariant(item)


def test_unitize_refused_while_stock_is_out(item):
    with atomic():
        QuantityLedger.reserve(item.id, 1, "req-1")

    with pytest.raises(ValidationError):
        QuantityLedger.unitize(item.id)
    db.session.rollback()


def test_retire_unit_removes_it_from_total(make_item):
    item = make_item(quantity=2)
    with atomic():
        units = QuantityLedger.unitize(item.id)
    with atomic():
        QuantityLedger.retire_unit(units[0].id)

    db.session.refresh(item)
    assert item.total_quantity == 1
    assert item.current_quantity == 1
    assert QuantityLedger.check_invariant(item)


def test_add_stock_grows_available_and_total(item):
    with atomic():
        QuantityLedger.add_stock(item.id, 3)

    db.session.refresh(item)
    assert item.current_quantity == 5
    assert item.total_quantity == 5


def test_stale_session_loses_last_unit_on_file_db(tmp_path):
    # her app context kendi session'ını açar; iki bağlantı aynı dosyada yarışır
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'race.db'}"

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
        dept = Department(name="Biyoloji Laboratuvarı")
        db.session.add(dept)
        db.session.flush()
        item = Item(name="Santrifüj", item_code="SNT-1", department_id=dept.id,
                    current_quantity=1, total_quantity=1)
        db.session.add(item)
        db.session.commit()
        item_id = item.id

    with app.app_context():
        stale = db.session.get(Item, item_id)
        assert stale.current_quantity == 1

        with app.app_context():
            assert db.session.get(Item, item_id).current_quantity == 1
            with atomic():
                QuantityLedger.reserve(item_id, 1, "req-b")

        # ilk session hâlâ eski değeri görüyor, koşullu UPDATE yine de tutmaz
        assert stale.current_quantity == 1
        with pytest.raises(Conflict):
            with atomic():
                QuantityLedger.reserve(item_id, 1, "req-a")

    with app.app_context():
        item = db.session.get(Item, item_id)
        assert item.buckets() == {"available": 0, "reserved": 1, "issued": 0, "maintenance": 0, "damaged": 0}
        assert [r.request_id for r in StockReservation.query.all()] == ["req-b"]
        db.drop_all()
        db.engine.dispose()
