# odflow/services/limits.py
"""
Per-semester OD limit policy.

Counting, classification and candidate selection are pure functions over a
list of requests. The db-backed wrappers load rows and hand them over.
"""
from __future__ import annotations
import enum
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from odflow.core.errors import InvalidTransition, MissingText
from odflow.crud.od_request import check_version, get_request, list_requests, save
from odflow.metrics import transitions_total
from odflow.models.od_request import ODRequest, ODStatus
from odflow.services.audit import record_audit
from odflow.services.notifications import notify, notify_status_change
from odflow.services.workflow import touch
from odflow.utils.clock import utcnow
from odflow.utils.policy import exception_keywords, od_limit
from odflow.utils.semester import semester_for

logger = logging.getLogger(__name__)


class LimitStatus(str, enum.Enum):
    WITHIN_LIMIT = "within-limit"
    AT_LIMIT = "at-limit"
    EXCEEDED = "exceeded"


_SORT_ORDER = {LimitStatus.EXCEEDED: 0, LimitStatus.AT_LIMIT: 1, LimitStatus.WITHIN_LIMIT: 2}

APPROVED_STATUSES = {
    ODStatus.MENTOR_APPROVED, ODStatus.HOD_APPROVED, ODStatus.PRINCIPAL_APPROVED,
    ODStatus.CERTIFICATE_UPLOADED, ODStatus.CERTIFICATE_APPROVED, ODStatus.COMPLETED,
}
# statuses an exception review can still act on
EXCEPTION_REVIEWABLE = {ODStatus.SUBMITTED, ODStatus.MENTOR_APPROVED}


# -------------------------- pure functions --------------------------

def classify(total: int, limit: Optional[int] = None) -> LimitStatus:
    limit = od_limit() if limit is None else limit
    if total < limit:
        return LimitStatus.WITHIN_LIMIT
    if total == limit:
        return LimitStatus.AT_LIMIT
    return LimitStatus.EXCEEDED

def counted(req: ODRequest) -> bool:
    return not req.status_enum.is_rejected

def semester_requests(requests: Iterable[ODRequest], student_id: str, semester: str) -> List[ODRequest]:
    return [
        r for r in requests
        if r.student_id == student_id and semester_for(r.submitted_at) == semester and counted(r)
    ]

def count_for(requests: Iterable[ODRequest], student_id: str, semester: str) -> int:
    return len(semester_requests(requests, student_id, semester))

def snapshot(requests: Iterable[ODRequest], student_id: str, semester: str,
             limit: Optional[int] = None) -> Dict:
    limit = od_limit() if limit is None else limit
    mine = semester_requests(requests, student_id, semester)
    total = len(mine)
    return {
        "student_id": student_id,
        "student_name": mine[0].student_name if mine else None,
        "semester": semester,
        "total_ods": total,
        "approved_ods": sum(1 for r in mine if r.status_enum in APPROVED_STATUSES),
        "pending_ods": sum(1 for r in mine if r.status_enum == ODStatus.SUBMITTED),
        "limit": limit,
        "remaining": max(limit - total, 0),
        "status": classify(total, limit).value,
    }

def is_special_case(req: ODRequest, keywords: Optional[List[str]] = None) -> bool:
    keywords = exception_keywords() if keywords is None else keywords
    if (req.prize_info or {}).get("won_prize"):
        return True
    text = f"{req.reason or ''} {req.detailed_reason or ''}".lower()
    return any(k in text for k in keywords)

def is_exception_candidate(req: ODRequest, requests: Iterable[ODRequest],
                           limit: Optional[int] = None) -> bool:
    if req.exception_reviewed or req.status_enum not in EXCEPTION_REVIEWABLE:
        return False
    if not is_special_case(req):
        return False
    # the request under review does not count against its own allowance
    others = [r for r in semester_requests(requests, req.student_id, semester_for(req.submitted_at))
              if r.id != req.id]
    limit = od_limit() if limit is None else limit
    return len(others) >= limit

def department_report(requests: Iterable[ODRequest], semester: str,
                      limit: Optional[int] = None) -> List[Dict]:
    """One snapshot per student seen in `requests`, worst first."""
    requests = list(requests)
    students = sorted({r.student_id for r in requests})
    rows = [snapshot(requests, sid, semester, limit) for sid in students]
    rows = [r for r in rows if r["total_ods"] > 0]
    rows.sort(key=lambda r: (_SORT_ORDER[LimitStatus(r["status"])], -r["total_ods"], r["student_id"]))
    return rows


# -------------------------- db-backed --------------------------

def student_snapshot(db: Session, student_id: str, semester: Optional[str] = None,
                     now: Optional[datetime] = None) -> Dict:
    semester = semester or semester_for((now or utcnow()).date())
    return snapshot(list_requests(db, student_id=student_id), student_id, semester)

def department_limits(db: Session, department: Optional[str], semester: Optional[str] = None,
                      now: Optional[datetime] = None) -> List[Dict]:
    semester = semester or semester_for((now or utcnow()).date())
    return department_report(list_requests(db, department=department), semester)

def notify_limit_crossing(db: Session, student_id: str, semester: str) -> None:
    """Tell the student once per semester when they reach or pass the limit."""
    snap = student_snapshot(db, student_id, semester)
    status = LimitStatus(snap["status"])
    if status == LimitStatus.WITHIN_LIMIT:
        return
    key = f"od-limit-{student_id}-{semester}-{status.value}"
    if status == LimitStatus.AT_LIMIT:
        notify(db, "warning", "OD Limit Reached",
               f"You have reached the maximum limit of {snap['limit']} ODs for {semester}.",
               student_id=student_id, dedup_key=key)
    else:
        notify(db, "error", "OD Limit Exceeded",
               f"You have used {snap['total_ods']}/{snap['limit']} ODs this semester. "
               "Please consult with your mentor.",
               student_id=student_id, dedup_key=key)

def exception_candidates(db: Session, department: Optional[str] = None) -> List[ODRequest]:
    rows = list_requests(db, department=department)
    by_student: Dict[str, List[ODRequest]] = {}
    for r in rows:
        by_student.setdefault(r.student_id, []).append(r)
    return [r for r in rows if is_exception_candidate(r, by_student[r.student_id])]

def reviewed_exceptions(db: Session, department: Optional[str] = None) -> List[ODRequest]:
    q = db.query(ODRequest).filter(ODRequest.exception_reviewed.is_(True))
    if department is not None:
        q = q.filter(ODRequest.department == department)
    return q.order_by(ODRequest.exception_reviewed_at.desc()).all()

def exception_decision(
    db: Session,
    request_id: int,
    decision: str,
    remarks: str,
    actor: str,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ODRequest:
    """HOD waives (approve) or enforces (deny) the semester limit for a special-case request."""
    d = (decision or "").strip().lower()
    if d not in ("approve", "deny"):
        raise ValueError(f"Invalid decision '{decision}'. Must be one of ['approve', 'deny'].")

    req = get_request(db, request_id)
    check_version(req, expected_version)
    if not is_exception_candidate(req, list_requests(db, student_id=req.student_id)):
        raise InvalidTransition(
            f"OD request {req.id} is not awaiting an exception review",
            {"status": req.status, "exception_reviewed": req.exception_reviewed},
        )
    remarks = (remarks or "").strip()
    if not remarks:
        raise MissingText("Please provide remarks for your decision")

    now = now or utcnow()
    previous = req.status_enum
    req.exception_reviewed = True
    req.exception_approved = d == "approve"
    req.exception_remarks = remarks
    req.exception_reviewed_by = actor
    req.exception_reviewed_at = now
    req.status = (ODStatus.MENTOR_APPROVED if d == "approve" else ODStatus.MENTOR_REJECTED).value
    touch(req, now)
    save(db, req)

    transitions_total.labels(role="hod", action=f"exception_{d}").inc()
    logger.info("request %s: limit exception %s by %s", req.id, d, actor)
    record_audit(db, "EXCEPTION_DECISION", req.id, actor, {
        "decision": d, "remarks": remarks, "from": previous.value, "to": req.status,
    })
    if req.status_enum != previous:
        notify_status_change(db, req)
    else:
        notify(db, "success", "Exception approved - OD limit waived",
               f'Your OD for "{req.detailed_reason or req.reason}" was approved as a limit exception.',
               request_id=req.id, student_id=req.student_id, department=req.department)
    return req
