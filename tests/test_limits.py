from datetime import date, datetime, timedelta

import pytest

from conftest import seed_request
from odflow.core.errors import InvalidTransition, MissingText
from odflow.models.notification import Notification
from odflow.models.od_request import ODStatus
from odflow.services import limits
from odflow.services.limits import LimitStatus, classify
from odflow.utils.semester import recent_semesters, semester_for


def test_semester_boundaries():
    assert semester_for(date(2025, 7, 1)) == "Odd 2025-2026"
    assert semester_for(date(2025, 6, 30)) == "Even 2024-2025"
    assert semester_for(datetime(2025, 12, 31, 23, 59)) == "Odd 2025-2026"
    assert semester_for(date(2026, 1, 1)) == "Even 2025-2026"


def test_recent_semesters_newest_first():
    assert recent_semesters(date(2025, 3, 10), years=1) == ["Even 2024-2025", "Odd 2024-2025"]
    assert recent_semesters(date(2025, 9, 1), years=1) == ["Odd 2025-2026", "Even 2024-2025"]


@pytest.mark.parametrize("total,expected", [
    (0, LimitStatus.WITHIN_LIMIT), (4, LimitStatus.WITHIN_LIMIT),
    (5, LimitStatus.AT_LIMIT), (6, LimitStatus.EXCEEDED),
])
def test_classify(total, expected):
    assert classify(total, 5) == expected


def test_rejected_and_other_semesters_not_counted(db, now):
    for _ in range(3):
        seed_request(db, now)
    seed_request(db, now, status=ODStatus.MENTOR_REJECTED.value)
    seed_request(db, now, status=ODStatus.HOD_REJECTED.value)
    seed_request(db, now - timedelta(days=120))  # previous odd semester
    seed_request(db, now, student_id="s2")

    snap = limits.student_snapshot(db, "s1", now=now)
    assert snap["semester"] == "Even 2024-2025"
    assert snap["total_ods"] == 3
    assert snap["pending_ods"] == 3
    assert snap["remaining"] == 2
    assert snap["status"] == "within-limit"


def test_snapshot_counts_approved(db, now):
    seed_request(db, now, status=ODStatus.COMPLETED.value)
    seed_request(db, now, status=ODStatus.HOD_APPROVED.value)
    seed_request(db, now)
    snap = limits.student_snapshot(db, "s1", now=now)
    assert snap["approved_ods"] == 2
    assert snap["pending_ods"] == 1


def test_department_report_worst_first(db, now):
    for _ in range(6):
        seed_request(db, now, student_id="over")
    for _ in range(5):
        seed_request(db, now, student_id="at")
    seed_request(db, now, student_id="ok")
    seed_request(db, now, student_id="elsewhere", department="ECE")

    rows = limits.department_limits(db, "CSE", now=now)
    assert [r["student_id"] for r in rows] == ["over", "at", "ok"]
    assert [r["status"] for r in rows] == ["exceeded", "at-limit", "within-limit"]
    assert rows[0]["remaining"] == 0


def test_limit_crossing_notifies_once(db, now):
    sem = semester_for(now)
    for _ in range(5):
        seed_request(db, now)
    limits.notify_limit_crossing(db, "s1", sem)
    limits.notify_limit_crossing(db, "s1", sem)
    titles = [n.title for n in db.query(Notification).filter(Notification.student_id == "s1")]
    assert titles == ["OD Limit Reached"]

    seed_request(db, now)
    limits.notify_limit_crossing(db, "s1", sem)
    titles = sorted(n.title for n in db.query(Notification).filter(Notification.student_id == "s1"))
    assert titles == ["OD Limit Exceeded", "OD Limit Reached"]


def _special(db, now, **kw):
    return seed_request(db, now, reason="competition", detailed_reason="National coding competition", **kw)


def test_fifth_request_is_within_allowance(db, now):
    for _ in range(4):
        seed_request(db, now)
    fifth = _special(db, now)
    assert limits.exception_candidates(db, "CSE") == []
    with pytest.raises(InvalidTransition):
        limits.exception_decision(db, fifth.id, "deny", "limit applies", "hod.b", now=now)
    db.refresh(fifth)
    assert fifth.status == ODStatus.SUBMITTED.value


def test_exception_candidates(db, now):
    for _ in range(5):
        seed_request(db, now)
    special = _special(db, now)
    plain = seed_request(db, now)
    prize = seed_request(db, now, prize_info={"won_prize": True, "prize_details": "1st place"})

    ids = {r.id for r in limits.exception_candidates(db, "CSE")}
    assert special.id in ids
    assert prize.id in ids
    assert plain.id not in ids


def test_count_for_skips_rejected_and_other_students(db, now):
    rows = [seed_request(db, now), seed_request(db, now, status=ODStatus.PRINCIPAL_REJECTED.value),
            seed_request(db, now, student_id="s2")]
    assert limits.count_for(rows, "s1", semester_for(now)) == 1


def test_special_case_below_limit_is_not_candidate(db, now):
    _special(db, now)
    assert limits.exception_candidates(db) == []


def test_exception_deny_rejects(db, now):
    for _ in range(5):
        seed_request(db, now)
    req = _special(db, now)

    req = limits.exception_decision(db, req.id, "deny", "limit applies", "hod.b", now=now)
    assert req.status == ODStatus.MENTOR_REJECTED.value
    assert req.exception_reviewed is True
    assert req.exception_approved is False
    assert req.exception_reviewed_by == "hod.b"
    assert [r.id for r in limits.reviewed_exceptions(db)] == [req.id]

    with pytest.raises(InvalidTransition):
        limits.exception_decision(db, req.id, "approve", "changed my mind", "hod.b", now=now)


def test_exception_approve_advances_submitted(db, now):
    for _ in range(5):
        seed_request(db, now)
    req = _special(db, now)
    req = limits.exception_decision(db, req.id, "approve", "national level event", "hod.b", now=now)
    assert req.status == ODStatus.MENTOR_APPROVED.value
    assert req.exception_approved is True


def test_exception_needs_remarks_and_valid_decision(db, now):
    for _ in range(5):
        seed_request(db, now)
    req = _special(db, now)
    with pytest.raises(MissingText):
        limits.exception_decision(db, req.id, "approve", "  ", "hod.b", now=now)
    with pytest.raises(ValueError):
        limits.exception_decision(db, req.id, "maybe", "hmm", "hod.b", now=now)
    db.refresh(req)
    assert req.exception_reviewed is False
    assert req.status == ODStatus.SUBMITTED.value


def test_non_candidate_decision_refused(db, now):
    req = seed_request(db, now)
    with pytest.raises(InvalidTransition):
        limits.exception_decision(db, req.id, "approve", "ok", "hod.b", now=now)
