# odflow/services/escalation.py
"""
Escalation monitor.

A periodic sweep: requests left in 'submitted' past the escalation window are
flagged for the HOD, and one aggregate notification goes out per day.
Mentors of each department with overdue requests get one reminder a day, and
requests past the warning window show up as approaching. A missed tick just defers the work; the next tick sees the same overdue rows.
"""
from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from odflow.crud.od_request import list_requests
from odflow.metrics import escalations_total, refresh_status_gauge
from odflow.models.od_request import ODRequest, ODStatus
from odflow.services.audit import record_audit
from odflow.services.limits import LimitStatus, department_report
from odflow.services.notifications import notify
from odflow.services.workflow import touch
from odflow.utils.clock import utcnow
from odflow.utils.policy import escalation_hours, escalation_warning_hours
from odflow.utils.semester import semester_for

logger = logging.getLogger(__name__)


def escalation_reason(hours: int) -> str:
    return f"Mentor did not act within {hours} hours"

def overdue(requests: Iterable[ODRequest], now: datetime, hours: int) -> List[ODRequest]:
    cutoff = now - timedelta(hours=hours)
    return [
        r for r in requests
        if r.status_enum == ODStatus.SUBMITTED and not r.auto_escalated and r.submitted_at < cutoff
    ]

def pending_escalation(db: Session, department: Optional[str] = None,
                       now: Optional[datetime] = None) -> List[ODRequest]:
    rows = list_requests(db, department=department, status=ODStatus.SUBMITTED.value, auto_escalated=False)
    return overdue(rows, now or utcnow(), escalation_hours())

def escalated(db: Session, department: Optional[str] = None) -> List[ODRequest]:
    return list_requests(db, department=department, auto_escalated=True)

def approaching(requests: Iterable[ODRequest], now: datetime, warning_hours: int, hours: int) -> List[ODRequest]:
    """Still 'submitted', past the warning window but not yet overdue."""
    oldest = now - timedelta(hours=hours)
    newest = now - timedelta(hours=warning_hours)
    return [
        r for r in requests
        if r.status_enum == ODStatus.SUBMITTED and oldest <= r.submitted_at < newest
    ]

def approaching_escalation(db: Session, department: Optional[str] = None,
                           now: Optional[datetime] = None) -> List[ODRequest]:
    rows = list_requests(db, department=department, status=ODStatus.SUBMITTED.value)
    return approaching(rows, now or utcnow(), escalation_warning_hours(), escalation_hours())

def escalate_overdue(db: Session, now: Optional[datetime] = None) -> Dict:
    now = now or utcnow()
    hours = escalation_hours()
    due = pending_escalation(db, now=now)
    if not due:
        return {"escalated": 0, "request_ids": [], "notified": False}

    reason = escalation_reason(hours)
    for req in due:
        req.auto_escalated = True
        req.escalated_at = now
        req.escalation_reason = reason
        touch(req, now)
    ids = [r.id for r in due]
    try:
        db.commit()
    except StaleDataError:
        # an actor touched one of these rows mid-sweep; the next tick retries
        db.rollback()
        logger.warning("[escalation] concurrent update during sweep; deferring %d request(s)", len(ids))
        return {"escalated": 0, "request_ids": [], "notified": False}

    escalations_total.inc(len(ids))
    logger.info("[escalation] escalated %d request(s): %s", len(ids), ids)
    record_audit(db, "AUTO_ESCALATED", None, "system", {"request_ids": ids, "reason": reason})

    n = len(ids)
    sent = notify(
        db, "warning", "Auto-Escalation Triggered",
        f"{n} request{'s have' if n > 1 else ' has'} been auto-escalated to HOD due to mentor inaction",
        dedup_key=f"escalated-{now.date().isoformat()}",
    )
    return {"escalated": n, "request_ids": ids, "notified": sent is not None}

def overdue_reminders(db: Session, now: Optional[datetime] = None) -> int:
    """Once a day per department, remind mentors of requests still waiting past the window."""
    now = now or utcnow()
    hours = escalation_hours()
    cutoff = now - timedelta(hours=hours)
    by_dept: Dict[str, List[ODRequest]] = {}
    for r in list_requests(db, status=ODStatus.SUBMITTED.value):
        if r.submitted_at < cutoff:
            by_dept.setdefault(r.department, []).append(r)

    sent = 0
    for dept, rows in sorted(by_dept.items()):
        n = len(rows)
        out = notify(
            db, "error", "Urgent: Overdue Approvals",
            f"You have {n} OD request{'s' if n > 1 else ''} pending for more than {hours} hours. "
            "Please review to maintain workflow speed.",
            department=dept,
            dedup_key=f"escalation-notified-{dept}-{now.date().isoformat()}",
        )
        if out is not None:
            sent += 1
    return sent

def limit_alerts(db: Session, now: Optional[datetime] = None) -> int:
    """Once a day per department, warn the HOD about students over the OD limit."""
    now = now or utcnow()
    semester = semester_for(now.date())
    by_dept: Dict[str, List[ODRequest]] = {}
    for r in list_requests(db):
        by_dept.setdefault(r.department, []).append(r)

    sent = 0
    for dept, rows in sorted(by_dept.items()):
        over = [s for s in department_report(rows, semester) if s["status"] == LimitStatus.EXCEEDED.value]
        if not over:
            continue
        n = len(over)
        out = notify(
            db, "error",
            f"{n} student{'s have' if n > 1 else ' has'} exceeded OD limit",
            f"Department: {dept}. Immediate review required.",
            department=dept,
            dedup_key=f"hod-limit-alert-{dept}-{now.date().isoformat()}",
        )
        if out is not None:
            sent += 1
    return sent

def escalation_tick(db: Session, now: Optional[datetime] = None) -> Dict:
    now = now or utcnow()
    out = escalate_overdue(db, now)
    out["mentor_reminders"] = overdue_reminders(db, now)
    out["limit_alerts"] = limit_alerts(db, now)
    refresh_status_gauge(db)
    return out
