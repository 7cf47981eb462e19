from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from odflow.core.database import get_db
from odflow.deps.auth import CurrentUser, require_role
from odflow.services.limits import department_limits, student_snapshot
from odflow.utils.clock import utcnow
from odflow.utils.semester import recent_semesters, semester_for

router = APIRouter(prefix="/api/limits", tags=["limits"])


@router.get("/semesters", response_model=dict)
def api_semesters():
    today = utcnow().date()
    return {"current": semester_for(today), "recent": recent_semesters(today)}

@router.get("/me", response_model=dict)
def api_my_limit(semester: Optional[str] = None, db: Session = Depends(get_db),
                 user: CurrentUser = Depends(require_role("student"))):
    return student_snapshot(db, user.username, semester)

@router.get("/students/{student_id}", response_model=dict)
def api_student_limit(student_id: str, semester: Optional[str] = None, db: Session = Depends(get_db),
                      user: CurrentUser = Depends(require_role("mentor", "hod", "principal", "admin"))):
    return student_snapshot(db, student_id, semester)

@router.get("/department", response_model=List[dict])
def api_department_limits(department: Optional[str] = None, semester: Optional[str] = None,
                          status: Optional[str] = None, db: Session = Depends(get_db),
                          user: CurrentUser = Depends(require_role("mentor", "hod", "principal", "admin"))):
    dept = user.department if user.role in ("mentor", "hod") and user.department else department
    rows = department_limits(db, dept, semester)
    if status:
        rows = [r for r in rows if r["status"] == status]
    return rows
