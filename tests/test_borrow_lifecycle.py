from datetime import datetime, timedelta

import pytest

from lablink.errors import Conflict, Forbidden, InvalidTransition, NotFound, ValidationError
from lablink.extensions import db
from lablink.models.borrow_message import BorrowMessage
from lablink.models.issued_item import IssuedItem
from lablink.models.notification import Notification
from lablink.repositories.borrow_repo import BorrowRepo
from lablink.services.access_service import AccessPolicy
from lablink.services.borrow_service import BorrowService
from lablink.services.events import borrow_transitioned
from lablink.services.ledger_service import QuantityLedger
from lablink.services.return_service import ReturnService
from lablink.utils.clock import utcnow


def _create(student, item, window, quantity=2):
    start, end = window
    return BorrowService.create_request(student.id, item.id, quantity, start, end, purpose="Deney")


def _approve(borrow, actor):
    return BorrowService.approve(borrow.id, actor.id, pickup_location="B-104")


def test_scenario_a_full_cycle(item, student, staff, window):
    borrow = _create(student, item, window)
    db.session.refresh(item)
    assert borrow.status == "pending"
    assert item.current_quantity == 0
    assert borrow.item_department_id == item.department_id

    _approve(borrow, staff)
    assert borrow.status == "approved"
    issued = IssuedItem.query.filter_by(borrow_request_id=borrow.id).one()
    assert issued.due_date == window[1]
    assert issued.quantity == 2

    ret = ReturnService.submit_return(borrow.id, student.id, 2, "good", "https://img.test/r.jpg")
    db.session.refresh(borrow)
    assert borrow.status == "return_pending"
    assert borrow.active_return_id == ret.id

    ReturnService.verify_return(ret.id, staff.id)
    db.session.refresh(borrow)
    db.session.refresh(item)
    db.session.refresh(issued)
    assert borrow.status == "returned"
    assert borrow.actual_return_date is not None
    assert issued.status == "returned"
    assert item.current_quantity == 2
    assert QuantityLedger.check_invariant(item)


def test_scenario_b_damaged_return(item, student, staff, window):
    borrow = _create(student, item, window)
    _approve(borrow, staff)
    ret = ReturnService.submit_return(borrow.id, student.id, 2, "damaged", "https://img.test/r.jpg")
    ReturnService.verify_return(ret.id, staff.id)

    db.session.refresh(borrow)
    db.session.refresh(item)
    assert borrow.status == "returned"
    assert item.current_quantity == 0
    assert item.damaged_quantity == 2
    assert QuantityLedger.check_invariant(item)


def test_scenario_c_reject_releases_and_messages(item, student, staff, window):
    borrow = _create(student, item, window)
    BorrowService.reject(borrow.id, staff.id, "out of stock for priority use")

    db.session.refresh(borrow)
    db.session.refresh(item)
    assert borrow.status == "rejected"
    assert borrow.rejection_reason == "out of stock for priority use"
    assert item.current_quantity == 2
    assert item.reserved_quantity == 0

    message = BorrowMessage.query.filter_by(borrow_request_id=borrow.id, message_type="rejection").one()
    assert message.recipient_id == student.id
    assert message.sender_id == staff.id


def test_approval_message_carries_pickup_details(item, student, staff, window):
    borrow = _create(student, item, window)
    when = utcnow().replace(microsecond=0) + timedelta(days=1)
    BorrowService.approve(borrow.id, staff.id, "B-104", collection_datetime=when, conditions="Eldiven zorunlu")

    message = BorrowMessage.query.filter_by(borrow_request_id=borrow.id, message_type="approval").one()
    assert message.pickup_location == "B-104"
    assert message.collection_datetime == when
    assert message.conditions == "Eldiven zorunlu"
    assert Notification.query.filter_by(user_id=student.id, type="borrow_approved").count() == 1


def test_new_request_notifies_department_staff_and_admins(item, student, staff, outsider, admin, window):
    _create(student, item, window)

    notified = {n.user_id for n in Notification.query.filter_by(type="borrow_request").all()}
    assert notified == {staff.id, admin.id}


def test_approve_replay_is_noop(item, student, staff, window):
    borrow = _create(student, item, window)
    _approve(borrow, staff)
    again = _approve(borrow, staff)

    assert again.status == "approved"
    assert IssuedItem.query.filter_by(borrow_request_id=borrow.id).count() == 1
    assert BorrowMessage.query.filter_by(borrow_request_id=borrow.id, message_type="approval").count() == 1


def test_approve_requires_pickup_location(item, student, staff, window):
    borrow = _create(student, item, window)
    with pytest.raises(ValidationError):
        BorrowService.approve(borrow.id, staff.id, pickup_location="  ")


def test_lost_approve_race_raises_conflict(item, student, staff, window, monkeypatch):
    borrow = _create(student, item, window)
    monkeypatch.setattr(BorrowRepo, "transition", staticmethod(lambda *a, **kw: False))

    with pytest.raises(Conflict):
        _approve(borrow, staff)

    db.session.refresh(item)
    assert item.reserved_quantity == 2
    assert item.issued_quantity == 0


def test_no_transition_out_of_rejected(item, student, staff, window):
    borrow = _create(student, item, window)
    BorrowService.reject(borrow.id, staff.id, "yok")

    with pytest.raises(InvalidTransition) as exc:
        _approve(borrow, staff)
    assert exc.value.current_state == "rejected"

    with pytest.raises(InvalidTransition):
        BorrowService.reject(borrow.id, staff.id, "yine")


def test_no_transition_out_of_returned(item, student, staff, window):
    borrow = _create(student, item, window)
    _approve(borrow, staff)
    ret = ReturnService.submit_return(borrow.id, student.id, 2, "good", "https://img.test/r.jpg")
    ReturnService.verify_return(ret.id, staff.id)

    with pytest.raises(InvalidTransition):
        BorrowService.reject(borrow.id, staff.id, "geç")
    with pytest.raises(InvalidTransition):
        ReturnService.submit_return(borrow.id, student.id, 1, "good", "https://img.test/r.jpg")


def test_reject_requires_reason(item, student, staff, window):
    borrow = _create(student, item, window)
    with pytest.raises(ValidationError):
        BorrowService.reject(borrow.id, staff.id, "")


def test_staff_of_other_department_cannot_approve(item, student, outsider, window):
    borrow = _create(student, item, window)
    with pytest.raises(Forbidden):
        _approve(borrow, outsider)


def test_admin_can_approve_any_department(item, student, admin, window):
    borrow = _create(student, item, window)
    assert _approve(borrow, admin).status == "approved"


def test_access_policy_can_be_replaced(app, item, student, outsider, window):
    class AllowAll(AccessPolicy):
        def can_approve(self, actor_id, department_id):
            return True

    app.extensions["access_policy"] = AllowAll()
    borrow = _create(student, item, window)
    assert _approve(borrow, outsider).status == "approved"


def test_withdraw_releases_reservation(item, student, window):
    borrow = _create(student, item, window)
    BorrowService.withdraw(borrow.id, student.id)

    db.session.refresh(borrow)
    db.session.refresh(item)
    assert borrow.status == "rejected"
    assert borrow.rejection_reason == "withdrawn"
    assert item.current_quantity == 2


def test_only_creator_can_withdraw(item, student, other_student, window):
    borrow = _create(student, item, window)
    with pytest.raises(Forbidden):
        BorrowService.withdraw(borrow.id, other_student.id)


def test_create_validations(make_item, student, window):
    item = make_item(quantity=1)
    start, end = window

    with pytest.raises(ValidationError):
        BorrowService.create_request(student.id, item.id, 2, start, end)
    with pytest.raises(ValidationError):
        BorrowService.create_request(student.id, item.id, 0, start, end)
    with pytest.raises(ValidationError):
        BorrowService.create_request(student.id, item.id, 1, end, start)
    with pytest.raises(NotFound):
        BorrowService.create_request(student.id, "missing", 1, start, end)

    locked = make_item(quantity=3, code="ITM-2", borrowable=False)
    with pytest.raises(ValidationError):
        BorrowService.create_request(student.id, locked.id, 1, start, end)

    item.archived_at = datetime(2024, 1, 1)
    db.session.commit()
    with pytest.raises(ValidationError):
        BorrowService.create_request(student.id, item.id, 1, start, end)


def test_transition_signal_is_published(item, student, staff, window):
    seen = []

    def receiver(sender, **payload):
        seen.append((payload["old_status"], payload["new_status"]))

    with borrow_transitioned.connected_to(receiver):
        borrow = _create(student, item, window)
        _approve(borrow, staff)

    assert seen == [(None, "pending"), ("pending", "approved")]


def test_failing_signal_receiver_does_not_break_transition(item, student, window):
    def receiver(sender, **payload):
        raise RuntimeError("ui down")

    with borrow_transitioned.connected_to(receiver):
        borrow = _create(student, item, window)

    assert borrow.status == "pending"


def test_staff_listing_is_scoped_to_departments(item, student, staff, outsider, admin, window):
    borrow = _create(student, item, window)

    assert [b.id for b in BorrowService.list_for_staff(staff.id)] == [borrow.id]
    assert BorrowService.list_for_staff(outsider.id) == []
    assert [b.id for b in BorrowService.list_for_staff(admin.id)] == [borrow.id]
    with pytest.raises(Forbidden):
        BorrowService.get_request(borrow.id, outsider.id)
