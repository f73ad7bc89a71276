from lablink.extensions import db
from lablink.models.activity_log import ActivityLog
from lablink.models.borrow import BorrowRequest
from lablink.models.outbox_event import OutboxEvent
from lablink.services.audit_service import AuditService
from lablink.services.borrow_service import BorrowService
from lablink.services.return_service import ReturnService


def test_every_transition_is_audited(item, student, staff, window):
    start, end = window
    borrow = BorrowService.create_request(student.id, item.id, 2, start, end)
    BorrowService.approve(borrow.id, staff.id, pickup_location="B-104")
    ret = ReturnService.submit_return(borrow.id, student.id, 2, "good", "https://img.test/r.jpg")
    ReturnService.verify_return(ret.id, staff.id)

    borrow_actions = [log.action for log in AuditService.list_logs(entity_type="borrow_request", entity_id=borrow.id)]
    assert sorted(borrow_actions) == ["borrow_request_approved", "borrow_request_created"]

    return_actions = [log.action for log in AuditService.list_logs(entity_id=ret.id)]
    assert sorted(return_actions) == ["return_submitted", "return_verified"]

    approved = ActivityLog.query.filter_by(action="borrow_request_approved").one()
    assert approved.actor_id == staff.id
    assert approved.old_values == {"status": "pending"}
    assert approved.new_values["due_date"] == end.isoformat()


def test_audit_sink_failure_does_not_block(item, student, window, monkeypatch):
    def down(event):
        raise RuntimeError("audit db down")

    monkeypatch.setattr(AuditService, "materialize", staticmethod(down))
    start, end = window
    borrow = BorrowService.create_request(student.id, item.id, 1, start, end)

    assert db.session.get(BorrowRequest, borrow.id).status == "pending"
    assert ActivityLog.query.count() == 0
    pending = OutboxEvent.query.filter_by(event_type="audit", status="pending").one()
    assert pending.attempts == 1


def test_list_logs_filters_by_actor(item, student, staff, window):
    start, end = window
    borrow = BorrowService.create_request(student.id, item.id, 1, start, end)
    BorrowService.reject(borrow.id, staff.id, "yok")

    assert [log.action for log in AuditService.list_logs(actor_id=staff.id)] == ["borrow_request_rejected"]
