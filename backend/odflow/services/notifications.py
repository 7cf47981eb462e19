"""
Notification sink.

Every notification is stored as a row the UI can poll. When a Slack webhook is
configured the same message is posted there too. Slack is best effort: its
failures are logged and never reach the caller.
"""
from __future__ import annotations
import logging
from typing import List, Optional

import requests
from sqlalchemy.orm import Session

from odflow.crud.kv import kv_get, kv_set
from odflow.metrics import notifications_total
from odflow.models.notification import Notification
from odflow.models.od_request import ODRequest, ODStatus
from odflow.utils.clock import utcnow
from odflow.utils.runtime_config import get_slack_webhook, get_value

logger = logging.getLogger(__name__)

SEVERITIES = {"info", "success", "warning", "error"}
_SEV_EMOJI = {"error": "🚨", "warning": "⚠️", "success": "✅", "info": "🔔"}


def _slack_send(severity: str, title: str, description: str) -> bool:
    url = get_slack_webhook()
    if not url:
        logger.debug("[slack] webhook not set; skipping send")
        return False
    emoji = _SEV_EMOJI.get(severity, "🔔")
    payload = {
        "text": f"{emoji} {title}: {description}",
        "blocks": [
            {"type": "header", "text": {"type": "plain_text", "text": f"{emoji} {title}", "emoji": True}},
            {"type": "section", "text": {"type": "mrkdwn", "text": description}},
            {"type": "context", "elements": [
                {"type": "mrkdwn", "text": f"*{get_value('SLACK_CHANNEL_LABEL')}* • {severity.upper()}"},
            ]},
        ],
    }
    try:
        r = requests.post(url, json=payload, timeout=10)
        if r.status_code >= 300:
            logger.warning("[slack] POST status=%s body=%s", r.status_code, r.text[:300])
            return False
        return True
    except requests.RequestException as e:
        logger.warning("[slack] send error: %s", e)
        return False


def notify(
    db: Session,
    severity: str,
    title: str,
    description: str,
    request_id: Optional[int] = None,
    student_id: Optional[str] = None,
    department: Optional[str] = None,
    dedup_key: Optional[str] = None,
    commit: bool = True,
) -> Optional[Notification]:
    """
    Emit one notification. When `dedup_key` is already present in the KV
    store nothing is emitted and None is returned.
    """
    if severity not in SEVERITIES:
        raise ValueError(f"Invalid severity '{severity}'. Must be one of {sorted(SEVERITIES)}.")
    if dedup_key and kv_get(db, dedup_key) is not None:
        logger.debug("notification '%s' suppressed by guard %s", title, dedup_key)
        return None

    n = Notification(
        severity=severity, title=title, description=description,
        request_id=request_id, student_id=student_id, department=department,
        dedup_key=dedup_key, created_at=utcnow(),
    )
    db.add(n)
    if dedup_key:
        kv_set(db, dedup_key, "true")
    if commit:
        db.commit()
        db.refresh(n)
    else:
        db.flush()

    notifications_total.labels(severity=severity).inc()
    logger.info("notification [%s] %s: %s", severity, title, description)
    _slack_send(severity, title, description)
    return n


def _event_name(req: ODRequest) -> str:
    return req.detailed_reason or req.reason or "OD Request"


def status_change_message(req: ODRequest) -> tuple[str, str, str]:
    """(severity, title, description) shown to the student for the request's current status."""
    name = _event_name(req)
    reason = f"Reason: {req.rejection_reason}" if req.rejection_reason else ""
    s = req.status_enum
    if s == ODStatus.MENTOR_APPROVED:
        return "success", "Mentor Approved!", f'Your OD for "{name}" has been approved by your mentor and moved to HOD review.'
    if s == ODStatus.HOD_APPROVED:
        return "success", "HOD Approved!", f'Your OD for "{name}" has been approved by HOD and moved to Principal review.'
    if s == ODStatus.PRINCIPAL_APPROVED:
        return "success", "Principal Approved!", f'Your OD for "{name}" has been approved by Principal and is ready for ERP logging.'
    if s == ODStatus.COMPLETED:
        return "success", "OD Approved & Logged!", f'Your OD for "{name}" has been successfully logged in the ERP system.'
    if s == ODStatus.CERTIFICATE_UPLOADED:
        return "info", "Certificate Uploaded", f'Certificate for "{name}" uploaded successfully. Awaiting HOD approval.'
    if s == ODStatus.CERTIFICATE_APPROVED:
        return "success", "Certificate Approved!", f'Certificate for "{name}" has been approved. Process complete!'
    if s == ODStatus.MENTOR_REJECTED:
        return "error", "Mentor Rejected", f'Your OD for "{name}" has been rejected by your mentor. {reason or "Please contact your mentor for details."}'
    if s == ODStatus.HOD_REJECTED:
        return "error", "HOD Rejected", f'Your OD for "{name}" has been rejected by HOD. {reason or "Please contact your HOD for details."}'
    if s == ODStatus.PRINCIPAL_REJECTED:
        return "error", "Principal Rejected", f'Your OD for "{name}" has been rejected by Principal. {reason or "Please contact the Principal office for details."}'
    return "info", "Status Update", f'Your OD for "{name}" status has been updated.'


def notify_status_change(db: Session, req: ODRequest, commit: bool = True) -> Optional[Notification]:
    severity, title, description = status_change_message(req)
    return notify(
        db, severity, title, description,
        request_id=req.id, student_id=req.student_id, department=req.department,
        commit=commit,
    )


def list_notifications(
    db: Session,
    student_id: Optional[str] = None,
    department: Optional[str] = None,
    limit: int = 50,
) -> List[Notification]:
    q = db.query(Notification)
    if student_id is not None:
        q = q.filter(Notification.student_id == student_id)
    if department is not None:
        q = q.filter(Notification.department == department)
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
