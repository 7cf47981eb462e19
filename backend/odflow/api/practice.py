from datetime import date, datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from odflow.core.database import get_db
from odflow.crud import practice as practice_crud
from odflow.deps.auth import CurrentUser, require_role
from odflow.services.submission import practice_summary
from odflow.utils.clock import utcnow
from odflow.utils.policy import default_target_problems

router = APIRouter(prefix="/api/practice", tags=["practice"])


class WeekCreateIn(BaseModel):
    start_date: Optional[date] = None
    target_problems: Optional[int] = Field(default=None, gt=0)

class WeekUpdateIn(BaseModel):
    easy: Optional[int] = Field(default=None, ge=0)
    medium: Optional[int] = Field(default=None, ge=0)
    hard: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None
    status: Optional[Literal["not-started", "in-progress", "completed"]] = None

class WeekOut(BaseModel):
    id: int
    student_id: str
    week_number: int
    start_date: date
    end_date: date
    problems_solved: int
    target_problems: int
    easy: int
    medium: int
    hard: int
    status: str
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/weeks", response_model=List[WeekOut])
def api_list_weeks(db: Session = Depends(get_db), user: CurrentUser = Depends(require_role("student"))):
    return [WeekOut.model_validate(w) for w in practice_crud.list_weeks(db, user.username)]

@router.get("/students/{student_id}/weeks", response_model=List[WeekOut])
def api_view_weeks(student_id: str, db: Session = Depends(get_db),
                   user: CurrentUser = Depends(require_role("mentor", "hod", "admin"))):
    return [WeekOut.model_validate(w) for w in practice_crud.list_weeks(db, student_id)]

@router.post("/weeks", response_model=WeekOut, status_code=201)
def api_create_week(body: WeekCreateIn, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(require_role("student"))):
    w = practice_crud.create_week(
        db, user.username,
        body.start_date or utcnow().date(),
        body.target_problems or default_target_problems(),
    )
    return WeekOut.model_validate(w)

@router.patch("/weeks/{week_id}", response_model=WeekOut)
def api_update_week(week_id: int, body: WeekUpdateIn, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(require_role("student"))):
    w = practice_crud.get_week(db, user.username, week_id)
    w = practice_crud.update_week(db, w, easy=body.easy, medium=body.medium, hard=body.hard,
                                  notes=body.notes, status=body.status)
    return WeekOut.model_validate(w)

@router.post("/weeks/{week_id}/complete", response_model=WeekOut)
def api_complete_week(week_id: int, db: Session = Depends(get_db),
                      user: CurrentUser = Depends(require_role("student"))):
    w = practice_crud.get_week(db, user.username, week_id)
    return WeekOut.model_validate(practice_crud.complete_week(db, w, utcnow()))

@router.get("/summary", response_model=dict)
def api_practice_summary(year: str, db: Session = Depends(get_db),
                         user: CurrentUser = Depends(require_role("student"))):
    return practice_summary(practice_crud.list_weeks(db, user.username), year, utcnow().date())
