# odflow/services/submission.py
"""
Submission gate for new OD requests.

Checks run in order and the first failure wins:
  1. the date range is well-formed
  2. the event has already ended
  3. the request is filed within the submission window
  4. the student practised the weekly LeetCode tiers their year requires
"""
from __future__ import annotations
import logging
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from odflow.core.errors import SubmissionRejected
from odflow.crud.od_request import create_request
from odflow.crud.practice import TIERS, list_weeks
from odflow.metrics import requests_submitted_total, submissions_rejected_total
from odflow.models.od_request import ODRequest
from odflow.models.practice import PracticeWeek
from odflow.services.audit import record_audit
from odflow.services.limits import notify_limit_crossing
from odflow.services.notifications import notify
from odflow.utils.clock import utcnow
from odflow.utils.policy import submission_window_days, year_requirements
from odflow.utils.semester import semester_for

logger = logging.getLogger(__name__)

_REQUIREMENT_MESSAGES = {
    1: "1st year students must complete Easy level problems",
    2: "2nd year students must complete Easy and Medium level problems",
    3: "3rd & 4th year students must complete Easy, Medium, and Hard level problems",
    4: "3rd & 4th year students must complete Easy, Medium, and Hard level problems",
}


# -------------------------- year / tiers --------------------------

def parse_year(year: str | int) -> Optional[int]:
    """'2nd' -> 2, '3' -> 3, 'final' -> None."""
    digits = re.sub(r"\D", "", str(year))
    return int(digits) if digits else None

def required_tiers(year: str | int) -> List[str]:
    reqs = year_requirements()
    return list(reqs.get(parse_year(year), reqs.get(1, ["easy"])))

def requirement_message(year: str | int) -> str:
    return _REQUIREMENT_MESSAGES.get(
        parse_year(year), "Complete the required LeetCode problems for your year"
    )


# -------------------------- pure checks --------------------------

def check_dates(from_date: date, to_date: date, today: date, window_days: Optional[int] = None) -> None:
    window = submission_window_days() if window_days is None else window_days
    if to_date < from_date:
        raise SubmissionRejected(
            "invalid_date_range", "To date cannot be before from date.",
            {"from_date": from_date.isoformat(), "to_date": to_date.isoformat()},
        )
    if to_date >= today:
        raise SubmissionRejected(
            "event_not_completed",
            "OD requests can only be submitted after the event has been completed. "
            "Please wait until after the event ends.",
            {"to_date": to_date.isoformat(), "today": today.isoformat()},
        )
    elapsed = (today - to_date).days
    if elapsed > window:
        raise SubmissionRejected(
            "late_submission",
            f"OD requests must be submitted within {window} days after the event completion. "
            f"Your event ended {elapsed} days ago. Late submissions are not accepted.",
            {"days_elapsed": elapsed, "window_days": window},
        )

def current_week(weeks: Iterable[PracticeWeek], today: date) -> Optional[PracticeWeek]:
    """The week whose window contains today, else the highest-numbered week."""
    weeks = list(weeks)
    if not weeks:
        return None
    for w in weeks:
        if w.start_date <= today <= w.end_date:
            return w
    return max(weeks, key=lambda w: w.week_number)

def completed_tiers(week: PracticeWeek) -> List[str]:
    return [t for t in TIERS if (getattr(week, t) or 0) > 0]

def check_practice(weeks: Iterable[PracticeWeek], year: str | int, today: date) -> PracticeWeek:
    required = required_tiers(year)
    week = current_week(weeks, today)
    if week is None:
        raise SubmissionRejected(
            "no_tracking_data",
            "Before submitting OD request, you must start tracking LeetCode problems in your dashboard. "
            f"{requirement_message(year)}.",
            {"required": required},
        )
    done = completed_tiers(week)
    missing = [t for t in required if t not in done]
    if missing:
        raise SubmissionRejected(
            "practice_incomplete",
            "You must complete LeetCode problems for this week before submitting OD request. "
            f"Missing: {', '.join(t.capitalize() for t in missing)} level problems. "
            f"{requirement_message(year)}.",
            {"required": required, "completed": done, "missing": missing, "week_number": week.week_number},
        )
    return week

def practice_summary(weeks: Iterable[PracticeWeek], year: str | int, today: date) -> Dict[str, Any]:
    """complete | incomplete | no-data, for the student's dashboard."""
    weeks = list(weeks)
    week = current_week(weeks, today)
    required = required_tiers(year)
    if week is None:
        return {"status": "no-data", "has_data": False, "completed_problems": 0,
                "required": required, "message": "No LeetCode tracking data found"}
    try:
        check_practice(weeks, year, today)
    except SubmissionRejected as e:
        return {"status": "incomplete", "has_data": True, "week_number": week.week_number,
                "completed_problems": week.problems_solved, "required": required, "message": e.message}
    return {"status": "complete", "has_data": True, "week_number": week.week_number,
            "completed_problems": week.problems_solved, "required": required,
            "message": f"LeetCode requirements met for Week {week.week_number}"}


# -------------------------- service --------------------------

def validate_submission(db: Session, student_id: str, year: str | int,
                        from_date: date, to_date: date, today: date) -> None:
    try:
        check_dates(from_date, to_date, today)
        check_practice(list_weeks(db, student_id), year, today)
    except SubmissionRejected as e:
        submissions_rejected_total.labels(code=e.code).inc()
        logger.info("submission by %s refused: %s", student_id, e.code)
        raise

def submit_request(db: Session, payload: Dict[str, Any], now: Optional[datetime] = None) -> ODRequest:
    """
    Validate and create a request in status 'submitted'.

    `payload` carries ODRequest column names: student_id, student_name,
    department, year, from_date, to_date, reason and the optional extras.
    """
    now = now or utcnow()
    validate_submission(
        db, payload["student_id"], payload["year"],
        payload["from_date"], payload["to_date"], now.date(),
    )
    req = create_request(db, payload, now)
    requests_submitted_total.inc()
    logger.info("request %s submitted by %s", req.id, req.student_id)

    record_audit(db, "OD_SUBMITTED", req.id, req.student_id, {
        "from_date": req.from_date.isoformat(),
        "to_date": req.to_date.isoformat(),
        "reason": req.reason,
    })
    notify(
        db, "info", "OD Request Submitted",
        f'Your OD for "{req.detailed_reason or req.reason}" is awaiting mentor review.',
        request_id=req.id, student_id=req.student_id, department=req.department,
    )
    notify_limit_crossing(db, req.student_id, semester_for(req.submitted_at))
    return req
