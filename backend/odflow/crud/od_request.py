# odflow/crud/od_request.py
from typing import Any, Dict, List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from odflow.core.errors import ConflictError, NotFound
from odflow.models.od_request import ODRequest, ODStatus

def create_request(db: Session, fields: Dict[str, Any], now: datetime) -> ODRequest:
    req = ODRequest(
        **fields,
        status=ODStatus.SUBMITTED.value,
        submitted_at=now,
        last_updated=now,
    )
    db.add(req)
    db.commit()
    db.refresh(req)
    return req

def get_request(db: Session, request_id: int) -> ODRequest:
    req = db.get(ODRequest, request_id)
    if not req:
        raise NotFound(f"OD request {request_id} not found")
    return req

def list_requests(
    db: Session,
    student_id: Optional[str] = None,
    department: Optional[str] = None,
    status: Optional[str] = None,
    auto_escalated: Optional[bool] = None,
    skip: int = 0,
    limit: Optional[int] = None,
) -> List[ODRequest]:
    q = db.query(ODRequest)
    if student_id is not None:
        q = q.filter(ODRequest.student_id == student_id)
    if department is not None:
        q = q.filter(ODRequest.department == department)
    if status is not None:
        q = q.filter(ODRequest.status == status)
    if auto_escalated is not None:
        q = q.filter(ODRequest.auto_escalated == auto_escalated)
    q = q.order_by(ODRequest.submitted_at.desc(), ODRequest.id.desc()).offset(skip)
    if limit is not None:
        q = q.limit(limit)
    return q.all()

def check_version(req: ODRequest, expected_version: Optional[int]) -> None:
    if expected_version is not None and req.version != expected_version:
        raise ConflictError(
            f"OD request {req.id} was modified concurrently "
            f"(expected version {expected_version}, found {req.version})",
            {"request_id": req.id, "expected_version": expected_version, "current_version": req.version},
        )

def save(db: Session, req: ODRequest) -> ODRequest:
    """Commit pending changes on `req`; a lost optimistic-lock race becomes ConflictError."""
    request_id = req.id
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise ConflictError(
            f"OD request {request_id} was modified concurrently; reload and retry",
            {"request_id": request_id},
        )
    db.refresh(req)
    return req
