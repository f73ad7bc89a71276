import json

import pytest

from lablink.errors import NotFound, ValidationError
from lablink.models.scan_log import ScanLog
from lablink.repositories.tx import atomic
from lablink.services.identity_service import IdentityService, build_qr_payload
from lablink.services.ledger_service import QuantityLedger


def test_json_payload_and_bare_code_resolve_to_same_item(item):
    payload = json.dumps({"type": "lablink_item", "id": item.id, "code": "ITM-1"})

    from_json = IdentityService.resolve(payload)
    from_code = IdentityService.resolve("ITM-1")

    assert from_json.item.id == item.id
    assert from_code.item.id == item.id
    assert from_json.unit is None


def test_bare_uuid_resolves_item(item):
    assert IdentityService.resolve(item.id).item.id == item.id


def test_malformed_json_is_treated_as_raw_code(make_item):
    item = make_item(code='{"broken')
    assert IdentityService.resolve('{"broken').item.id == item.id


def test_numeric_code_is_not_mistaken_for_json(make_item):
    item = make_item(code="12345")
    assert IdentityService.resolve("12345").item.id == item.id


def test_code_wins_over_id(make_item):
    first = make_item(code="ITM-A", name="A")
    second = make_item(code=first.id, name="B")

    # first.id hem first'ün id'si hem second'ın kodu
    assert IdentityService.resolve(first.id).item.id == second.id


def test_unit_qr_payload_resolves_unit(make_item):
    item = make_item(quantity=1)
    with atomic():
        unit = QuantityLedger.unitize(item.id)[0]

    resolution = IdentityService.resolve(unit.qr_code_data)
    assert resolution.unit.id == unit.id
    assert resolution.item.id == item.id
    assert IdentityService.resolve(unit.serial_number).unit.id == unit.id


def test_unknown_code_raises_not_found_and_logs(item, student):
    with pytest.raises(NotFound):
        IdentityService.resolve("NOPE-99", actor_id=student.id)

    log = ScanLog.query.order_by(ScanLog.id.desc()).first()
    assert log.scan_result == "not_found"
    assert log.scanned_by == student.id


def test_successful_scan_is_logged(item, student):
    IdentityService.resolve("ITM-1", actor_id=student.id, device_info={"device": "tablet"})

    log = ScanLog.query.filter_by(scan_result="success").one()
    assert log.item_id == item.id
    assert log.device_info == {"device": "tablet"}


def test_scan_log_failure_does_not_fail_resolve(item, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr("lablink.services.identity_service.ScanLog", broken)
    assert IdentityService.resolve("ITM-1").item.id == item.id


def test_empty_payload_is_invalid(app):
    with pytest.raises(ValidationError):
        IdentityService.resolve("   ")


def test_build_qr_payload_shape(item):
    data = json.loads(build_qr_payload(item))
    assert data["type"] == "lablink_item"
    assert data["id"] == item.id
    assert data["code"] == "ITM-1"
    # epoch milisaniye
    assert isinstance(data["ts"], int)
    assert data["ts"] > 1_600_000_000_000


def test_unit_label_carries_epoch_ms(make_item):
    item = make_item(quantity=1)
    with atomic():
        unit = QuantityLedger.unitize(item.id)[0]

    data = json.loads(unit.qr_code_data)
    assert data["id"] == unit.id
    assert data["code"] == unit.serial_number
    assert isinstance(data["ts"], int)
