from datetime import timedelta

import pytest

from conftest import seed_request
from odflow.core.errors import ConflictError, InvalidTransition, MissingText
from odflow.models.audit import AuditLog
from odflow.models.notification import Notification
from odflow.models.od_request import ODStatus
from odflow.services import workflow
from odflow.services.workflow import Action, Role, next_status, status_timeline


def test_full_happy_path_to_erp(db, now):
    req = seed_request(db, now)
    t = now + timedelta(hours=1)

    req = workflow.mentor_action(db, req.id, "approve", "mentor.a", now=t)
    assert req.status == ODStatus.MENTOR_APPROVED.value
    assert req.mentor_approved_by == "mentor.a"
    assert req.mentor_approved_at == t

    req = workflow.hod_action(db, req.id, "approve", "hod.b", now=t)
    assert req.status == ODStatus.HOD_APPROVED.value
    assert req.hod_approved_by == "hod.b"

    req = workflow.principal_action(db, req.id, "approve", "principal.c", feedback="ok", now=t)
    assert req.status == ODStatus.PRINCIPAL_APPROVED.value
    assert req.principal_feedback == "ok"

    req = workflow.finalize(db, req.id, now=t)
    assert req.status == ODStatus.COMPLETED.value
    assert req.erp_logged is True
    assert req.erp_logged_at == t
    assert req.version == 5


def test_certificate_flow(db, now):
    req = seed_request(db, now, status=ODStatus.MENTOR_APPROVED.value)
    req = workflow.upload_certificate(db, req.id, "s1", "https://files/cert.pdf", now=now)
    assert req.status == ODStatus.CERTIFICATE_UPLOADED.value
    assert req.certificate_ref == "https://files/cert.pdf"
    assert "https://files/cert.pdf" in req.attachments

    req = workflow.hod_action(db, req.id, "approve", "hod.b", now=now)
    assert req.status == ODStatus.CERTIFICATE_APPROVED.value

    req = workflow.finalize(db, req.id, now=now)
    assert req.status == ODStatus.COMPLETED.value


def test_certificate_requires_reference(db, now):
    req = seed_request(db, now, status=ODStatus.MENTOR_APPROVED.value)
    with pytest.raises(MissingText):
        workflow.upload_certificate(db, req.id, "s1", "   ", now=now)
    db.refresh(req)
    assert req.status == ODStatus.MENTOR_APPROVED.value


def test_mentor_reject_records_reason(db, now):
    req = seed_request(db, now)
    req = workflow.mentor_action(db, req.id, "reject", "mentor.a", feedback="no proof", now=now)
    assert req.status == ODStatus.MENTOR_REJECTED.value
    assert req.rejection_reason == "no proof"
    assert req.mentor_feedback == "no proof"


@pytest.mark.parametrize("action", ["reject", "return"])
def test_reject_and_return_need_feedback(db, now, action):
    req = seed_request(db, now)
    with pytest.raises(MissingText):
        workflow.mentor_action(db, req.id, action, "mentor.a", feedback="  ", now=now)
    db.refresh(req)
    assert req.status == ODStatus.SUBMITTED.value
    assert req.version == 1


def test_approve_accepts_empty_feedback(db, now):
    req = seed_request(db, now)
    req = workflow.mentor_action(db, req.id, "approve", "mentor.a", feedback="", now=now)
    assert req.status == ODStatus.MENTOR_APPROVED.value
    assert req.mentor_feedback is None


def test_return_keeps_status_and_records_feedback(db, now):
    req = seed_request(db, now)
    req = workflow.mentor_action(db, req.id, "return", "mentor.a", feedback="attach the brochure", now=now)
    assert req.status == ODStatus.SUBMITTED.value
    assert req.mentor_feedback == "attach the brochure"
    assert req.version == 2
    # no status change, no student notification
    assert db.query(Notification).filter(Notification.request_id == req.id).count() == 0


@pytest.mark.parametrize("status", [
    ODStatus.COMPLETED, ODStatus.MENTOR_REJECTED, ODStatus.HOD_REJECTED,
    ODStatus.PRINCIPAL_REJECTED, ODStatus.CERTIFICATE_APPROVED,
])
def test_terminal_states_refuse_approval(db, now, status):
    req = seed_request(db, now, status=status.value)
    before = req.version
    for call in (workflow.mentor_action, workflow.hod_action, workflow.principal_action):
        with pytest.raises(InvalidTransition):
            call(db, req.id, "approve", "someone", now=now)
    db.refresh(req)
    assert req.status == status.value
    assert req.version == before


def test_wrong_role_for_stage(db, now):
    req = seed_request(db, now)
    with pytest.raises(InvalidTransition):
        workflow.hod_action(db, req.id, "approve", "hod.b", now=now)
    with pytest.raises(InvalidTransition):
        workflow.finalize(db, req.id, now=now)


def test_next_status_is_table_driven():
    assert next_status(ODStatus.SUBMITTED, Role.MENTOR, Action.RETURN) == ODStatus.SUBMITTED
    assert next_status(ODStatus.MENTOR_REJECTED, Role.HOD, Action.OVERRIDE) == ODStatus.MENTOR_APPROVED
    with pytest.raises(InvalidTransition):
        next_status(ODStatus.HOD_REJECTED, Role.HOD, Action.OVERRIDE)
    with pytest.raises(ValueError):
        next_status("not_a_status", Role.HOD, Action.APPROVE)


def test_hod_override_preserves_original_rejection(db, now):
    req = seed_request(db, now)
    workflow.mentor_action(db, req.id, "reject", "mentor.a", feedback="insufficient proof", now=now)
    req = workflow.hod_override(db, req.id, "hod.b", "X", now=now)

    assert req.status == ODStatus.MENTOR_APPROVED.value
    assert req.rejection_reason == "insufficient proof"
    assert req.hod_override["justification"] == "X"
    assert req.hod_override["original_status"] == "mentor_rejected"
    assert req.hod_override["original_rejection_reason"] == "insufficient proof"
    assert req.hod_override["overridden_by"] == "hod.b"
    assert db.query(AuditLog).filter(AuditLog.action == "HOD_OVERRIDE").count() == 1


def test_hod_override_requires_justification(db, now):
    req = seed_request(db, now, status=ODStatus.MENTOR_REJECTED.value)
    with pytest.raises(MissingText):
        workflow.hod_override(db, req.id, "hod.b", "", now=now)
    db.refresh(req)
    assert req.status == ODStatus.MENTOR_REJECTED.value
    assert req.hod_override is None


@pytest.mark.parametrize("status", [ODStatus.SUBMITTED, ODStatus.HOD_REJECTED, ODStatus.PRINCIPAL_REJECTED])
def test_override_only_on_mentor_rejection(db, now, status):
    req = seed_request(db, now, status=status.value)
    with pytest.raises(InvalidTransition):
        workflow.hod_override(db, req.id, "hod.b", "please reconsider", now=now)


def test_override_through_apply_action_needs_hod(db, now):
    req = seed_request(db, now, status=ODStatus.MENTOR_REJECTED.value)
    with pytest.raises(InvalidTransition):
        workflow.apply_action(db, req.id, "mentor", "override", "mentor.a", "changed my mind", now=now)
    req = workflow.apply_action(db, req.id, "hod", "override", "hod.b", "proof verified", now=now)
    assert req.status == ODStatus.MENTOR_APPROVED.value


def test_stale_expected_version_is_a_conflict(db, now):
    req = seed_request(db, now)
    workflow.mentor_action(db, req.id, "approve", "mentor.a", now=now, expected_version=1)
    with pytest.raises(ConflictError):
        workflow.hod_action(db, req.id, "approve", "hod.b", now=now, expected_version=1)
    db.refresh(req)
    assert req.status == ODStatus.MENTOR_APPROVED.value


def test_concurrent_sessions_second_writer_loses(tmp_path, now):
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker
    from odflow.core.database import Base

    eng = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=eng)
    Session = sessionmaker(bind=eng, autocommit=False, autoflush=False)
    a, b = Session(), Session()
    try:
        req = seed_request(a, now)
        held = b.get(type(req), req.id)  # keeps version 1 alive in b's identity map
        assert held.version == 1

        workflow.mentor_action(a, req.id, "approve", "mentor.a", now=now)
        with pytest.raises(ConflictError):
            workflow.mentor_action(b, req.id, "reject", "mentor.z", feedback="late", now=now)

        a.refresh(req)
        assert req.status == ODStatus.MENTOR_APPROVED.value
    finally:
        a.close(); b.close(); eng.dispose()


def test_last_updated_never_precedes_submission(db, now):
    req = seed_request(db, now)
    req = workflow.mentor_action(db, req.id, "approve", "mentor.a", now=now - timedelta(days=1))
    assert req.last_updated >= req.submitted_at


def test_status_change_emits_student_notification(db, now):
    req = seed_request(db, now)
    workflow.mentor_action(db, req.id, "reject", "mentor.a", feedback="wrong dates", now=now)
    n = db.query(Notification).filter(Notification.request_id == req.id).one()
    assert n.severity == "error"
    assert n.title == "Mentor Rejected"
    assert "Reason: wrong dates" in n.description
    assert n.student_id == "s1"


def test_status_timeline_steps():
    states = [s["state"] for s in status_timeline("hod_approved")]
    assert states == ["completed", "completed", "current", "pending", "pending"]

    states = [s["state"] for s in status_timeline("mentor_rejected")]
    assert states == ["completed", "rejected", "pending", "pending", "pending"]

    assert all(s["state"] == "completed" for s in status_timeline("completed"))


def test_allowed_actions():
    assert set(workflow.allowed_actions(ODStatus.SUBMITTED, Role.MENTOR)) == {
        Action.APPROVE, Action.REJECT, Action.RETURN,
    }
    assert workflow.allowed_actions(ODStatus.COMPLETED, Role.HOD) == []
