from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from odflow.core.config import ACCESS_TTL_MIN
from odflow.core.security import ROLES, create_access_token, create_refresh_token, decode_token

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginIn(BaseModel):
    username: str
    role: str
    department: Optional[str] = None

class RefreshIn(BaseModel):
    refresh_token: str


@router.post("/login")
def auth_login(body: LoginIn):
    role = body.role.lower()
    if role not in ROLES:
        raise HTTPException(400, f"role must be {'|'.join(ROLES)}")
    access = create_access_token(body.username, role, body.department)
    refresh = create_refresh_token(body.username, role, body.department)
    return {"access_token": access, "refresh_token": refresh, "token_type": "bearer",
            "expires_in": ACCESS_TTL_MIN * 60, "role": role, "username": body.username,
            "department": body.department}

@router.post("/refresh")
def auth_refresh(body: RefreshIn):
    try:
        data = decode_token(body.refresh_token, expected_type="refresh")
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid/expired refresh token")
    new_access = create_access_token(data["sub"], data.get("role", "student"), data.get("dept"))
    return {"access_token": new_access, "token_type": "bearer", "expires_in": ACCESS_TTL_MIN * 60}
