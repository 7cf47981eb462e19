from __future__ import annotations
from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from odflow.models.audit import AuditLog
from odflow.utils.audit_sink import write_event
from odflow.utils.clock import utcnow

def record_audit(
    db: Session,
    action: str,
    request_id: Optional[int],
    actor: Optional[str],
    details: Dict[str, Any],
) -> AuditLog:
    """
    Persist audit to DB and mirror to filesystem as JSONL.
    """
    row = AuditLog(action=action, request_id=request_id, actor=actor, details=details, created_at=utcnow())
    db.add(row)
    db.commit()
    db.refresh(row)

    write_event({
        "id": row.id,
        "action": row.action,
        "request_id": row.request_id,
        "actor": row.actor,
        "details": row.details or {},
        "created_at": row.created_at.isoformat(),
    })
    return row

def list_audit(db: Session, request_id: Optional[int] = None, limit: int = 50) -> List[AuditLog]:
    q = db.query(AuditLog)
    if request_id is not None:
        q = q.filter(AuditLog.request_id == request_id)
    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
