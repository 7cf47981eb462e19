from datetime import timedelta

from conftest import seed_request
from odflow.models.audit import AuditLog
from odflow.models.notification import Notification
from odflow.models.od_request import ODStatus
from odflow.services.escalation import (
    approaching_escalation, escalation_tick, overdue_reminders, pending_escalation,
)


def _escalation_notes(db):
    return db.query(Notification).filter(Notification.title == "Auto-Escalation Triggered").all()


def test_overdue_request_escalated_once(db, now):
    req = seed_request(db, now - timedelta(hours=25))

    out = escalation_tick(db, now)
    assert out["escalated"] == 1
    assert out["request_ids"] == [req.id]
    assert out["notified"] is True

    db.refresh(req)
    assert req.auto_escalated is True
    assert req.escalated_at == now
    assert req.escalation_reason == "Mentor did not act within 24 hours"
    assert req.status == ODStatus.SUBMITTED.value

    out = escalation_tick(db, now + timedelta(minutes=5))
    assert out["escalated"] == 0
    db.refresh(req)
    assert req.escalated_at == now
    assert len(_escalation_notes(db)) == 1
    assert db.query(AuditLog).filter(AuditLog.action == "AUTO_ESCALATED").count() == 1


def test_fresh_and_acted_requests_untouched(db, now):
    fresh = seed_request(db, now - timedelta(hours=23))
    acted = seed_request(db, now - timedelta(hours=48), status=ODStatus.MENTOR_APPROVED.value)

    out = escalation_tick(db, now)
    assert out["escalated"] == 0
    assert _escalation_notes(db) == []
    for r in (fresh, acted):
        db.refresh(r)
        assert r.auto_escalated is False


def test_one_notification_per_day(db, now):
    seed_request(db, now - timedelta(hours=30))
    escalation_tick(db, now)

    # a second batch later the same day is flagged but not announced again
    late = seed_request(db, now - timedelta(hours=24, minutes=1))
    out = escalation_tick(db, now + timedelta(hours=1))
    assert out["escalated"] == 1
    assert out["notified"] is False
    db.refresh(late)
    assert late.auto_escalated is True
    assert len(_escalation_notes(db)) == 1

    seed_request(db, now - timedelta(hours=2))
    out = escalation_tick(db, now + timedelta(days=1))
    assert out["notified"] is True
    assert len(_escalation_notes(db)) == 2


def test_pending_escalation_listing(db, now):
    old = seed_request(db, now - timedelta(hours=26))
    seed_request(db, now - timedelta(hours=1))
    seed_request(db, now - timedelta(hours=40), department="ECE")
    assert [r.id for r in pending_escalation(db, "CSE", now=now)] == [old.id]


def test_hod_limit_alert_once_per_day(db, now):
    for _ in range(6):
        seed_request(db, now - timedelta(hours=1), student_id="busy")

    assert escalation_tick(db, now)["limit_alerts"] == 1
    assert escalation_tick(db, now + timedelta(hours=2))["limit_alerts"] == 0
    alerts = db.query(Notification).filter(Notification.department == "CSE",
                                           Notification.title.like("%exceeded OD limit")).all()
    assert len(alerts) == 1
    assert alerts[0].title == "1 student has exceeded OD limit"

    assert escalation_tick(db, now + timedelta(days=1))["limit_alerts"] == 1


def test_clearing_day_guard_allows_another_notice(db, now):
    from odflow.crud.kv import kv_delete, kv_get

    seed_request(db, now - timedelta(hours=30))
    escalation_tick(db, now)
    key = f"escalated-{now.date().isoformat()}"
    assert kv_get(db, key) == "true"

    assert kv_delete(db, key) is True
    db.commit()
    assert kv_delete(db, key) is False

    seed_request(db, now - timedelta(hours=25))
    assert escalation_tick(db, now + timedelta(hours=1))["notified"] is True
    assert len(_escalation_notes(db)) == 2


def test_approaching_window_boundaries(db, now):
    twelve = seed_request(db, now - timedelta(hours=12))
    thirteen = seed_request(db, now - timedelta(hours=13))
    day = seed_request(db, now - timedelta(hours=24))
    seed_request(db, now - timedelta(hours=24, minutes=1))
    seed_request(db, now - timedelta(hours=20), status=ODStatus.MENTOR_APPROVED.value)
    seed_request(db, now - timedelta(hours=18), department="ECE")

    ids = {r.id for r in approaching_escalation(db, "CSE", now=now)}
    assert ids == {thirteen.id, day.id}
    assert twelve.id not in ids


def _reminders(db, dept="CSE"):
    return db.query(Notification).filter(Notification.title == "Urgent: Overdue Approvals",
                                         Notification.department == dept).all()


def test_overdue_reminder_once_per_department_per_day(db, now):
    seed_request(db, now - timedelta(hours=30))
    seed_request(db, now - timedelta(hours=26))
    seed_request(db, now - timedelta(hours=40), department="ECE")
    seed_request(db, now - timedelta(hours=13), department="MECH")

    out = escalation_tick(db, now)
    assert out["mentor_reminders"] == 2
    notes = _reminders(db)
    assert len(notes) == 1
    assert notes[0].description.startswith("You have 2 OD requests pending for more than 24 hours")
    assert len(_reminders(db, "ECE")) == 1
    assert _reminders(db, "MECH") == []

    # escalated rows still wait on the mentor, but the day guard holds
    assert overdue_reminders(db, now + timedelta(hours=3)) == 0
    assert len(_reminders(db)) == 1

    assert overdue_reminders(db, now + timedelta(days=1)) == 2
    assert len(_reminders(db)) == 2
