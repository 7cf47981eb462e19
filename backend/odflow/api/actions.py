"""
Actor endpoints: every state change to an OD request goes through here.

Each body may carry `expected_version`; if the request moved on since the
caller read it the action is refused with 409 instead of clobbering it.
"""
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from odflow.api.requests import ODRequestOut, ensure_visible
from odflow.core.database import get_db
from odflow.crud.od_request import get_request
from odflow.deps.auth import CurrentUser, require_role
from odflow.services import limits, workflow

router = APIRouter(tags=["actions"])


class ReviewIn(BaseModel):
    action: Literal["approve", "reject", "return"]
    feedback: Optional[str] = None
    expected_version: Optional[int] = None

class StageDecisionIn(BaseModel):
    action: Literal["approve", "reject"]
    feedback: Optional[str] = None
    expected_version: Optional[int] = None

class CertificateIn(BaseModel):
    certificate_ref: str
    expected_version: Optional[int] = None

class VersionIn(BaseModel):
    expected_version: Optional[int] = None

class OverrideIn(BaseModel):
    justification: str
    expected_version: Optional[int] = None

class ExceptionIn(BaseModel):
    decision: Literal["approve", "deny"]
    remarks: str
    expected_version: Optional[int] = None


def _load_visible(db: Session, request_id: int, user: CurrentUser):
    ensure_visible(get_request(db, request_id), user)


@router.post("/api/requests/{request_id}/mentor-action", response_model=ODRequestOut)
def api_mentor_action(request_id: int, body: ReviewIn, db: Session = Depends(get_db),
                      user: CurrentUser = Depends(require_role("mentor"))):
    _load_visible(db, request_id, user)
    req = workflow.mentor_action(db, request_id, body.action, user.username, body.feedback or "",
                                 expected_version=body.expected_version)
    return ODRequestOut.model_validate(req)

@router.post("/api/requests/{request_id}/hod-action", response_model=ODRequestOut)
def api_hod_action(request_id: int, body: StageDecisionIn, db: Session = Depends(get_db),
                   user: CurrentUser = Depends(require_role("hod"))):
    _load_visible(db, request_id, user)
    req = workflow.hod_action(db, request_id, body.action, user.username, body.feedback or "",
                              expected_version=body.expected_version)
    return ODRequestOut.model_validate(req)

@router.post("/api/requests/{request_id}/principal-action", response_model=ODRequestOut)
def api_principal_action(request_id: int, body: StageDecisionIn, db: Session = Depends(get_db),
                         user: CurrentUser = Depends(require_role("principal"))):
    req = workflow.principal_action(db, request_id, body.action, user.username, body.feedback or "",
                                    expected_version=body.expected_version)
    return ODRequestOut.model_validate(req)

@router.post("/api/requests/{request_id}/certificate", response_model=ODRequestOut)
def api_upload_certificate(request_id: int, body: CertificateIn, db: Session = Depends(get_db),
                           user: CurrentUser = Depends(require_role("student"))):
    _load_visible(db, request_id, user)
    req = workflow.upload_certificate(db, request_id, user.username, body.certificate_ref,
                                      expected_version=body.expected_version)
    return ODRequestOut.model_validate(req)

@router.post("/api/requests/{request_id}/finalize", response_model=ODRequestOut)
def api_finalize(request_id: int, body: VersionIn, db: Session = Depends(get_db),
                 user: CurrentUser = Depends(require_role("principal", "admin"))):
    role = workflow.Role.PRINCIPAL if user.role == "principal" else workflow.Role.SYSTEM
    req = workflow.finalize(db, request_id, actor=user.username, role=role,
                            expected_version=body.expected_version)
    return ODRequestOut.model_validate(req)

@router.post("/api/requests/{request_id}/override", response_model=ODRequestOut)
def api_hod_override(request_id: int, body: OverrideIn, db: Session = Depends(get_db),
                     user: CurrentUser = Depends(require_role("hod"))):
    _load_visible(db, request_id, user)
    req = workflow.hod_override(db, request_id, user.username, body.justification,
                                expected_version=body.expected_version)
    return ODRequestOut.model_validate(req)

@router.post("/api/requests/{request_id}/exception", response_model=ODRequestOut)
def api_exception_decision(request_id: int, body: ExceptionIn, db: Session = Depends(get_db),
                           user: CurrentUser = Depends(require_role("hod"))):
    _load_visible(db, request_id, user)
    req = limits.exception_decision(db, request_id, body.decision, body.remarks, user.username,
                                    expected_version=body.expected_version)
    return ODRequestOut.model_validate(req)

@router.get("/api/exceptions", response_model=List[ODRequestOut])
def api_exception_candidates(db: Session = Depends(get_db),
                             user: CurrentUser = Depends(require_role("hod", "admin"))):
    rows = limits.exception_candidates(db, department=user.department)
    return [ODRequestOut.model_validate(r) for r in rows]

@router.get("/api/exceptions/reviewed", response_model=List[ODRequestOut])
def api_reviewed_exceptions(db: Session = Depends(get_db),
                            user: CurrentUser = Depends(require_role("hod", "admin"))):
    rows = limits.reviewed_exceptions(db, department=user.department)
    return [ODRequestOut.model_validate(r) for r in rows]
