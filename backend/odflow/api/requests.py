from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from odflow.core.database import get_db
from odflow.crud.od_request import get_request, list_requests
from odflow.deps.auth import CurrentUser, get_current_user, require_role
from odflow.models.od_request import ODRequest
from odflow.services.audit import list_audit
from odflow.services.submission import submit_request
from odflow.services.workflow import allowed_actions, status_timeline

router = APIRouter(tags=["requests"])


class PrizeInfo(BaseModel):
    won_prize: bool = False
    position: Optional[str] = None
    cash_amount: Optional[float] = Field(default=None, ge=0)

class SubjectAttendance(BaseModel):
    subject: str
    periods: List[str] = []
    faculty: Optional[str] = None

class ODSubmitIn(BaseModel):
    student_name: str = Field(min_length=1)
    roll_number: Optional[str] = None
    department: str = Field(min_length=1)
    year: str = Field(min_length=1)          # "1st" | "2" | ...
    from_date: date
    to_date: date
    reason: str = Field(min_length=1)
    detailed_reason: Optional[str] = None
    description: Optional[str] = None
    od_periods: List[str] = []
    prize_info: Optional[PrizeInfo] = None
    subject_attendance: List[SubjectAttendance] = []
    attachments: List[str] = []

class ODRequestOut(BaseModel):
    id: int
    student_id: str
    student_name: str
    roll_number: Optional[str] = None
    department: str
    year: str
    from_date: date
    to_date: date
    submitted_at: datetime
    last_updated: datetime
    reason: str
    detailed_reason: Optional[str] = None
    description: Optional[str] = None
    od_periods: List[str] = []
    status: str
    mentor_feedback: Optional[str] = None
    hod_feedback: Optional[str] = None
    principal_feedback: Optional[str] = None
    mentor_approved_by: Optional[str] = None
    mentor_approved_at: Optional[datetime] = None
    hod_approved_by: Optional[str] = None
    hod_approved_at: Optional[datetime] = None
    principal_approved_by: Optional[str] = None
    principal_approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    erp_logged: bool = False
    erp_logged_at: Optional[datetime] = None
    auto_escalated: bool = False
    escalated_at: Optional[datetime] = None
    escalation_reason: Optional[str] = None
    hod_override: Optional[dict] = None
    exception_reviewed: bool = False
    exception_approved: Optional[bool] = None
    exception_remarks: Optional[str] = None
    exception_reviewed_by: Optional[str] = None
    exception_reviewed_at: Optional[datetime] = None
    prize_info: Optional[dict] = None
    subject_attendance: Optional[List[dict]] = None
    attachments: Optional[List[str]] = None
    certificate_ref: Optional[str] = None
    version: int

    class Config:
        from_attributes = True

class AuditEntry(BaseModel):
    id: int
    action: str
    request_id: Optional[int]
    actor: Optional[str]
    details: dict
    created_at: datetime

    class Config:
        from_attributes = True


def ensure_visible(req: ODRequest, user: CurrentUser) -> None:
    """Students see their own requests; staff with a department see only that department."""
    if user.role == "student" and req.student_id != user.username:
        raise HTTPException(status_code=404, detail=f"OD request {req.id} not found")
    if user.role in ("mentor", "hod") and user.department and req.department != user.department:
        raise HTTPException(status_code=404, detail=f"OD request {req.id} not found")


@router.post("/api/requests", response_model=ODRequestOut, status_code=201)
def api_submit(body: ODSubmitIn, db: Session = Depends(get_db),
               user: CurrentUser = Depends(require_role("student"))):
    payload = body.model_dump()
    payload["student_id"] = user.username
    if payload["prize_info"] is None:
        payload.pop("prize_info")
    req = submit_request(db, payload)
    return ODRequestOut.model_validate(req)

@router.get("/api/requests", response_model=List[ODRequestOut])
def api_list(status: Optional[str] = None, department: Optional[str] = None,
             escalated: Optional[bool] = None, skip: int = 0, limit: int = 100,
             db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    student_id = user.username if user.role == "student" else None
    if user.role in ("mentor", "hod") and user.department:
        department = user.department
    rows = list_requests(db, student_id=student_id, department=department, status=status,
                         auto_escalated=escalated, skip=skip, limit=limit)
    return [ODRequestOut.model_validate(r) for r in rows]

@router.get("/api/requests/{request_id}", response_model=ODRequestOut)
def api_get(request_id: int, db: Session = Depends(get_db),
            user: CurrentUser = Depends(get_current_user)):
    req = get_request(db, request_id)
    ensure_visible(req, user)
    return ODRequestOut.model_validate(req)

@router.get("/api/requests/{request_id}/timeline", response_model=dict)
def api_timeline(request_id: int, db: Session = Depends(get_db),
                 user: CurrentUser = Depends(get_current_user)):
    req = get_request(db, request_id)
    ensure_visible(req, user)
    role = user.role if user.role != "admin" else "system"
    actions = [a.value for a in allowed_actions(req.status_enum, role)] if role in (
        "student", "mentor", "hod", "principal", "system") else []
    return {"request_id": req.id, "status": req.status, "steps": status_timeline(req.status),
            "allowed_actions": actions}

@router.get("/api/requests/{request_id}/audit", response_model=List[AuditEntry])
def api_request_audit(request_id: int, limit: int = 50, db: Session = Depends(get_db),
                      user: CurrentUser = Depends(require_role("mentor", "hod", "principal", "admin"))):
    req = get_request(db, request_id)
    ensure_visible(req, user)
    return [AuditEntry.model_validate(r) for r in list_audit(db, request_id=req.id, limit=limit)]
