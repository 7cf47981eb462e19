# odflow/services/workflow.py
"""
Approval state machine for OD requests.

Every legal move is one entry in TRANSITIONS, keyed by
(current status, acting role, action). Anything not in the table is an
InvalidTransition, and the request is left untouched.
"""
from __future__ import annotations
import enum
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from odflow.core.errors import InvalidTransition, MissingText
from odflow.crud.od_request import check_version, get_request, save
from odflow.metrics import transitions_total
from odflow.models.od_request import ODRequest, ODStatus
from odflow.services.audit import record_audit
from odflow.services.notifications import notify_status_change
from odflow.utils.clock import utcnow

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    STUDENT = "student"
    MENTOR = "mentor"
    HOD = "hod"
    PRINCIPAL = "principal"
    SYSTEM = "system"


class Action(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"
    UPLOAD_CERTIFICATE = "upload_certificate"
    FINALIZE = "finalize"
    OVERRIDE = "override"


S = ODStatus

TRANSITIONS: Dict[Tuple[ODStatus, Role, Action], ODStatus] = {
    (S.SUBMITTED, Role.MENTOR, Action.APPROVE): S.MENTOR_APPROVED,
    (S.SUBMITTED, Role.MENTOR, Action.REJECT): S.MENTOR_REJECTED,
    (S.SUBMITTED, Role.MENTOR, Action.RETURN): S.SUBMITTED,
    (S.MENTOR_APPROVED, Role.HOD, Action.APPROVE): S.HOD_APPROVED,
    (S.MENTOR_APPROVED, Role.HOD, Action.REJECT): S.HOD_REJECTED,
    (S.MENTOR_APPROVED, Role.STUDENT, Action.UPLOAD_CERTIFICATE): S.CERTIFICATE_UPLOADED,
    (S.CERTIFICATE_UPLOADED, Role.HOD, Action.APPROVE): S.CERTIFICATE_APPROVED,
    (S.HOD_APPROVED, Role.PRINCIPAL, Action.APPROVE): S.PRINCIPAL_APPROVED,
    (S.HOD_APPROVED, Role.PRINCIPAL, Action.REJECT): S.PRINCIPAL_REJECTED,
    (S.HOD_APPROVED, Role.PRINCIPAL, Action.FINALIZE): S.COMPLETED,
    (S.HOD_APPROVED, Role.SYSTEM, Action.FINALIZE): S.COMPLETED,
    (S.PRINCIPAL_APPROVED, Role.PRINCIPAL, Action.FINALIZE): S.COMPLETED,
    (S.PRINCIPAL_APPROVED, Role.SYSTEM, Action.FINALIZE): S.COMPLETED,
    (S.CERTIFICATE_APPROVED, Role.PRINCIPAL, Action.FINALIZE): S.COMPLETED,
    (S.CERTIFICATE_APPROVED, Role.SYSTEM, Action.FINALIZE): S.COMPLETED,
    (S.MENTOR_REJECTED, Role.HOD, Action.OVERRIDE): S.MENTOR_APPROVED,
}

# actions whose free text is mandatory
TEXT_REQUIRED = {Action.REJECT, Action.RETURN, Action.OVERRIDE}


def next_status(status: ODStatus, role: Role, action: Action) -> ODStatus:
    target = TRANSITIONS.get((ODStatus(status), Role(role), Action(action)))
    if target is None:
        raise InvalidTransition(
            f"'{Role(role).value}' cannot '{Action(action).value}' a request in status '{ODStatus(status).value}'",
            {"status": ODStatus(status).value, "role": Role(role).value, "action": Action(action).value},
        )
    return target


def allowed_actions(status: ODStatus, role: Role) -> List[Action]:
    return [a for (s, r, a) in TRANSITIONS if s == ODStatus(status) and r == Role(role)]


def touch(req: ODRequest, now: datetime) -> None:
    # last_updated never runs behind submitted_at
    req.last_updated = max(now, req.submitted_at)


def _apply_side_effects(req: ODRequest, role: Role, action: Action, actor: str,
                        text: str, now: datetime, certificate_ref: Optional[str]) -> None:
    if action == Action.APPROVE:
        if role == Role.MENTOR:
            req.mentor_approved_by, req.mentor_approved_at = actor, now
        elif role == Role.HOD:
            req.hod_approved_by, req.hod_approved_at = actor, now
        elif role == Role.PRINCIPAL:
            req.principal_approved_by, req.principal_approved_at = actor, now
        if text:
            setattr(req, f"{role.value}_feedback", text)
    elif action == Action.REJECT:
        setattr(req, f"{role.value}_feedback", text)
        req.rejection_reason = text
    elif action == Action.RETURN:
        req.mentor_feedback = text
    elif action == Action.UPLOAD_CERTIFICATE:
        req.certificate_ref = certificate_ref
        req.attachments = list(req.attachments or []) + [certificate_ref]
    elif action == Action.FINALIZE:
        req.erp_logged = True
        req.erp_logged_at = now


def apply_action(
    db: Session,
    request_id: int,
    role: Role | str,
    action: Action | str,
    actor: str,
    text: str = "",
    expected_version: Optional[int] = None,
    certificate_ref: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ODRequest:
    """Run one workflow action; the whole read-modify-write commits or nothing does."""
    role, action = Role(role), Action(action)
    if action == Action.OVERRIDE:
        if role != Role.HOD:
            next_status(ODStatus.MENTOR_REJECTED, role, action)  # raises
        return hod_override(db, request_id, actor, text, expected_version=expected_version, now=now)

    req = get_request(db, request_id)
    check_version(req, expected_version)

    previous = req.status_enum
    target = next_status(previous, role, action)

    text = (text or "").strip()
    if action in TEXT_REQUIRED and not text:
        raise MissingText(f"A reason is required to {action.value} this request")
    certificate_ref = (certificate_ref or "").strip() or None
    if action == Action.UPLOAD_CERTIFICATE and not certificate_ref:
        raise MissingText("A certificate reference is required")

    now = now or utcnow()
    _apply_side_effects(req, role, action, actor, text, now, certificate_ref)
    req.status = target.value
    touch(req, now)
    save(db, req)

    transitions_total.labels(role=role.value, action=action.value).inc()
    logger.info("request %s: %s %s by %s (%s -> %s)",
                req.id, role.value, action.value, actor, previous.value, target.value)
    record_audit(
        db,
        f"{role.value.upper()}_{action.value.upper()}",
        req.id,
        actor,
        {"from": previous.value, "to": target.value, "text": text, "version": req.version},
    )
    if target != previous:
        notify_status_change(db, req)
    return req


def mentor_action(db: Session, request_id: int, action: str, actor: str, feedback: str = "",
                  expected_version: Optional[int] = None, now: Optional[datetime] = None) -> ODRequest:
    """approve | reject | return"""
    return apply_action(db, request_id, Role.MENTOR, action, actor, feedback,
                        expected_version=expected_version, now=now)


def hod_action(db: Session, request_id: int, action: str, actor: str, feedback: str = "",
               expected_version: Optional[int] = None, now: Optional[datetime] = None) -> ODRequest:
    return apply_action(db, request_id, Role.HOD, action, actor, feedback,
                        expected_version=expected_version, now=now)


def principal_action(db: Session, request_id: int, action: str, actor: str, feedback: str = "",
                     expected_version: Optional[int] = None, now: Optional[datetime] = None) -> ODRequest:
    return apply_action(db, request_id, Role.PRINCIPAL, action, actor, feedback,
                        expected_version=expected_version, now=now)


def upload_certificate(db: Session, request_id: int, actor: str, certificate_ref: str,
                       expected_version: Optional[int] = None, now: Optional[datetime] = None) -> ODRequest:
    return apply_action(db, request_id, Role.STUDENT, Action.UPLOAD_CERTIFICATE, actor,
                        expected_version=expected_version, certificate_ref=certificate_ref, now=now)


def finalize(db: Session, request_id: int, actor: str = "erp", role: Role | str = Role.SYSTEM,
             expected_version: Optional[int] = None, now: Optional[datetime] = None) -> ODRequest:
    """Mark the request as logged in the ERP."""
    return apply_action(db, request_id, role, Action.FINALIZE, actor,
                        expected_version=expected_version, now=now)


def hod_override(
    db: Session,
    request_id: int,
    actor: str,
    justification: str,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ODRequest:
    """Reverse a mentor rejection. The original rejection stays on record."""
    req = get_request(db, request_id)
    check_version(req, expected_version)

    previous = req.status_enum
    if previous != ODStatus.MENTOR_REJECTED:
        raise InvalidTransition(
            f"Only mentor-rejected requests can be overridden (request {req.id} is '{previous.value}')",
            {"status": previous.value},
        )
    justification = (justification or "").strip()
    if not justification:
        raise MissingText("Please provide justification for the override")

    now = now or utcnow()
    req.hod_override = {
        "overridden_by": actor,
        "overridden_at": now.isoformat(),
        "justification": justification,
        "original_status": previous.value,
        "original_rejection_reason": req.rejection_reason,
    }
    req.status = TRANSITIONS[(previous, Role.HOD, Action.OVERRIDE)].value
    touch(req, now)
    save(db, req)

    transitions_total.labels(role=Role.HOD.value, action=Action.OVERRIDE.value).inc()
    logger.info("request %s: mentor rejection overridden by %s", req.id, actor)
    record_audit(db, "HOD_OVERRIDE", req.id, actor, dict(req.hod_override))
    notify_status_change(db, req)
    return req


# -------------------------- status timeline --------------------------

TIMELINE_STEPS = [
    ("Submitted", "submitted"),
    ("Mentor", "mentor"),
    ("HOD", "hod"),
    ("Principal", "principal"),
    ("ERP Logged", "erp"),
]

# index of the step that is "current" for each in-flight status
_CURRENT_STEP = {
    ODStatus.SUBMITTED: 0,
    ODStatus.MENTOR_APPROVED: 1,
    ODStatus.HOD_APPROVED: 2,
    ODStatus.PRINCIPAL_APPROVED: 3,
}
_REJECTED_STEP = {
    ODStatus.MENTOR_REJECTED: 1,
    ODStatus.HOD_REJECTED: 2,
    ODStatus.PRINCIPAL_REJECTED: 3,
}


def status_timeline(status: ODStatus | str) -> List[dict]:
    """Five-step progress view: each step is completed, current, pending or rejected."""
    status = ODStatus(status)
    out = []
    for idx, (label, key) in enumerate(TIMELINE_STEPS):
        if status in _REJECTED_STEP:
            r = _REJECTED_STEP[status]
            state = "completed" if idx < r else ("rejected" if idx == r else "pending")
        elif status in _CURRENT_STEP:
            c = _CURRENT_STEP[status]
            state = "completed" if idx < c else ("current" if idx == c else "pending")
        else:
            state = "completed"
        out.append({"label": label, "key": key, "state": state})
    return out
