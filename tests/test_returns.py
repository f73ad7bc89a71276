import pytest

from lablink.errors import Forbidden, InvalidTransition, ValidationError
from lablink.extensions import db
from lablink.models.borrow_message import BorrowMessage
from lablink.models.notification import Notification
from lablink.models.return_request import ReturnRequest
from lablink.services.borrow_service import BorrowService
from lablink.services.events import damage_reported
from lablink.services.ledger_service import QuantityLedger
from lablink.services.return_service import ReturnService

IMG = "https://img.test/return.jpg"


@pytest.fixture
def borrowed(item, student, staff, window):
    start, end = window
    borrow = BorrowService.create_request(student.id, item.id, 2, start, end)
    BorrowService.approve(borrow.id, staff.id, pickup_location="B-104")
    return borrow


def test_only_one_pending_return(borrowed, student):
    ReturnService.submit_return(borrowed.id, student.id, 2, "good", IMG)

    with pytest.raises(InvalidTransition) as exc:
        ReturnService.submit_return(borrowed.id, student.id, 2, "good", IMG)
    assert exc.value.current_state == "return_pending"
    assert ReturnRequest.query.filter_by(borrow_request_id=borrowed.id).count() == 1


def test_rejected_return_can_be_resubmitted(borrowed, student, staff, item):
    first = ReturnService.submit_return(borrowed.id, student.id, 2, "good", IMG)
    ReturnService.reject_return(first.id, staff.id, "Fotoğraf bulanık")

    db.session.refresh(borrowed)
    assert borrowed.status == "return_pending"
    assert borrowed.active_return_id is None
    assert BorrowMessage.query.filter_by(borrow_request_id=borrowed.id, message_type="info").count() == 1

    second = ReturnService.submit_return(borrowed.id, student.id, 2, "good", IMG)
    ReturnService.verify_return(second.id, staff.id)

    db.session.refresh(borrowed)
    db.session.refresh(item)
    assert borrowed.status == "returned"
    assert item.current_quantity == 2


def test_reject_return_requires_reason(borrowed, student, staff):
    ret = ReturnService.submit_return(borrowed.id, student.id, 2, "good", IMG)
    with pytest.raises(ValidationError):
        ReturnService.reject_return(ret.id, staff.id, " ")


def test_rejected_return_cannot_be_verified(borrowed, student, staff):
    ret = ReturnService.submit_return(borrowed.id, student.id, 2, "good", IMG)
    ReturnService.reject_return(ret.id, staff.id, "Eksik fotoğraf")

    with pytest.raises(InvalidTransition) as exc:
        ReturnService.verify_return(ret.id, staff.id)
    assert exc.value.current_state == "rejected"


def test_submit_validations(borrowed, student, other_student):
    with pytest.raises(Forbidden):
        ReturnService.submit_return(borrowed.id, other_student.id, 1, "good", IMG)
    with pytest.raises(ValidationError):
        ReturnService.submit_return(borrowed.id, student.id, 3, "good", IMG)
    with pytest.raises(ValidationError):
        ReturnService.submit_return(borrowed.id, student.id, 1, "good", "")
    with pytest.raises(ValidationError):
        ReturnService.submit_return(borrowed.id, student.id, 1, "shiny", IMG)


def test_cannot_return_pending_request(item, student, window):
    start, end = window
    borrow = BorrowService.create_request(student.id, item.id, 1, start, end)
    with pytest.raises(InvalidTransition):
        ReturnService.submit_return(borrow.id, student.id, 1, "good", IMG)


def test_partial_return_sends_shortfall_to_damaged(borrowed, student, staff, item):
    seen = []

    def receiver(sender, **payload):
        seen.append(payload)

    ret = ReturnService.submit_return(borrowed.id, student.id, 1, "good", IMG)
    with damage_reported.connected_to(receiver):
        ReturnService.verify_return(ret.id, staff.id)

    db.session.refresh(item)
    assert item.current_quantity == 1
    assert item.damaged_quantity == 1
    assert QuantityLedger.check_invariant(item)
    assert seen[0]["shortfall"] == 1
    assert Notification.query.filter_by(user_id=staff.id, type="damage_reported").count() == 1


def test_missing_parts_goes_to_maintenance(borrowed, student, staff, item):
    ret = ReturnService.submit_return(borrowed.id, student.id, 2, "missing_parts", IMG, condition_notes="Lens yok")
    ReturnService.verify_return(ret.id, staff.id)

    db.session.refresh(item)
    assert item.maintenance_quantity == 2
    assert item.current_quantity == 0
    assert QuantityLedger.check_invariant(item)


def test_minor_wear_goes_back_to_shelf(borrowed, student, staff, item):
    seen = []

    def receiver(sender, **payload):
        seen.append(payload)

    ret = ReturnService.submit_return(borrowed.id, student.id, 2, "minor_wear", IMG)
    with damage_reported.connected_to(receiver):
        ReturnService.verify_return(ret.id, staff.id)

    db.session.refresh(item)
    assert item.current_quantity == 2
    assert seen == []


def test_verify_sends_return_notice(borrowed, student, staff):
    ret = ReturnService.submit_return(borrowed.id, student.id, 2, "good", IMG)
    ReturnService.verify_return(ret.id, staff.id)

    notice = BorrowMessage.query.filter_by(borrow_request_id=borrowed.id, message_type="return_notice").one()
    assert notice.recipient_id == student.id
    db.session.refresh(ret)
    assert ret.status == "approved"
    assert ret.verified_by == staff.id


def test_outsider_cannot_verify(borrowed, student, outsider):
    ret = ReturnService.submit_return(borrowed.id, student.id, 2, "good", IMG)
    with pytest.raises(Forbidden):
        ReturnService.verify_return(ret.id, outsider.id)
