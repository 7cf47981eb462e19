from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session

from odflow.core.errors import NotFound
from odflow.models.practice import PracticeWeek

TIERS = ("easy", "medium", "hard")
VALID_STATUSES = {"not-started", "in-progress", "completed"}

def list_weeks(db: Session, student_id: str) -> List[PracticeWeek]:
    return (
        db.query(PracticeWeek)
        .filter(PracticeWeek.student_id == student_id)
        .order_by(PracticeWeek.week_number.desc())
        .all()
    )

def get_week(db: Session, student_id: str, week_id: int) -> PracticeWeek:
    w = db.get(PracticeWeek, week_id)
    if not w or w.student_id != student_id:
        raise NotFound(f"Practice week {week_id} not found")
    return w

def create_week(db: Session, student_id: str, start: date, target_problems: int) -> PracticeWeek:
    """Open the student's next week: seven days starting at `start`."""
    last = (
        db.query(PracticeWeek)
        .filter(PracticeWeek.student_id == student_id)
        .order_by(PracticeWeek.week_number.desc())
        .first()
    )
    w = PracticeWeek(
        student_id=student_id,
        week_number=(last.week_number + 1) if last else 1,
        start_date=start,
        end_date=start + timedelta(days=7),
        target_problems=target_problems,
        status="in-progress",
    )
    db.add(w); db.commit(); db.refresh(w)
    return w

def update_week(
    db: Session,
    w: PracticeWeek,
    easy: Optional[int] = None,
    medium: Optional[int] = None,
    hard: Optional[int] = None,
    notes: Optional[str] = None,
    status: Optional[str] = None,
) -> PracticeWeek:
    for tier, val in (("easy", easy), ("medium", medium), ("hard", hard)):
        if val is None:
            continue
        if val < 0:
            raise ValueError(f"{tier} count cannot be negative")
        setattr(w, tier, val)
    w.problems_solved = w.easy + w.medium + w.hard
    if notes is not None:
        w.notes = notes
    if status is not None:
        if status not in VALID_STATUSES:
            raise ValueError(f"Invalid status '{status}'. Must be one of {sorted(VALID_STATUSES)}.")
        w.status = status
    db.commit(); db.refresh(w)
    return w

def complete_week(db: Session, w: PracticeWeek, now: datetime) -> PracticeWeek:
    w.status = "completed"
    w.completed_at = now
    db.commit(); db.refresh(w)
    return w
