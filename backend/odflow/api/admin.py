from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from odflow.api.requests import ODRequestOut
from odflow.core.database import get_db
from odflow.deps.auth import CurrentUser, require_role
from odflow.services.escalation import approaching_escalation, escalated, escalation_tick, pending_escalation
from odflow.utils import audit_sink, runtime_config
from odflow.utils.policy import get_policy, reload_policy, POLICY_PATH

router = APIRouter(tags=["admin"])


class SlackWebhookIn(BaseModel):
    url: str


@router.post("/admin/escalation/run", response_model=dict)
def admin_escalation_run(db: Session = Depends(get_db), user=Depends(require_role("admin"))):
    return escalation_tick(db)

@router.get("/api/escalations", response_model=List[ODRequestOut])
def api_escalated(db: Session = Depends(get_db),
                  user: CurrentUser = Depends(require_role("hod", "principal", "admin"))):
    return [ODRequestOut.model_validate(r) for r in escalated(db, department=user.department)]

@router.get("/api/escalations/pending", response_model=List[ODRequestOut])
def api_pending_escalation(db: Session = Depends(get_db),
                           user: CurrentUser = Depends(require_role("mentor", "hod", "admin"))):
    return [ODRequestOut.model_validate(r) for r in pending_escalation(db, department=user.department)]

@router.get("/api/escalations/approaching", response_model=List[ODRequestOut])
def api_approaching_escalation(db: Session = Depends(get_db),
                               user: CurrentUser = Depends(require_role("mentor", "hod", "admin"))):
    return [ODRequestOut.model_validate(r) for r in approaching_escalation(db, department=user.department)]

@router.get("/api/policy", response_model=dict)
def api_policy(user=Depends(require_role("mentor", "hod", "principal", "admin"))):
    return {"policy": get_policy(), "policy_path": str(POLICY_PATH)}

@router.post("/api/policy/reload", response_model=dict)
def api_policy_reload(user=Depends(require_role("admin"))):
    return {"policy": reload_policy(), "policy_path": str(POLICY_PATH)}

@router.post("/config/slack-webhook", response_model=dict)
def api_set_slack_webhook(body: SlackWebhookIn, user=Depends(require_role("admin"))):
    url = body.url.strip()
    if url and not url.startswith("https://hooks.slack.com/"):
        raise HTTPException(status_code=400, detail="Invalid Slack webhook URL")
    runtime_config.set_slack_webhook(url)
    return {"saved": True, "enabled": bool(url)}

@router.get("/config", response_model=dict)
def api_get_config(user=Depends(require_role("admin"))):
    return runtime_config.snapshot()

@router.get("/api/audit-files", response_model=List[dict])
def list_audit_files(user=Depends(require_role("admin"))):
    return audit_sink.list_files()
