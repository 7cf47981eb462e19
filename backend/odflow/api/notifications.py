from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from odflow.core.database import get_db
from odflow.deps.auth import CurrentUser, get_current_user
from odflow.services.notifications import list_notifications

router = APIRouter(tags=["notifications"])


class NotificationOut(BaseModel):
    id: int
    severity: str
    title: str
    description: str
    request_id: Optional[int] = None
    student_id: Optional[str] = None
    department: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/api/notifications", response_model=List[NotificationOut])
def api_notifications(limit: int = 50, db: Session = Depends(get_db),
                      user: CurrentUser = Depends(get_current_user)):
    if user.role == "student":
        rows = list_notifications(db, student_id=user.username, limit=limit)
    elif user.role in ("mentor", "hod") and user.department:
        rows = list_notifications(db, department=user.department, limit=limit)
    else:
        rows = list_notifications(db, limit=limit)
    return [NotificationOut.model_validate(n) for n in rows]
