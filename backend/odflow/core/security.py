import jwt
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from odflow.core.config import JWT_SECRET, JWT_ALGO, ACCESS_TTL_MIN, REFRESH_TTL_MIN

ROLES = ("student", "mentor", "hod", "principal", "admin")

def _now() -> datetime:
    return datetime.now(timezone.utc)

def _issue(username: str, role: str, department: Optional[str], kind: str, ttl_min: int) -> str:
    now = _now()
    payload: Dict[str, Any] = {
        "sub": username,
        "role": role,
        "type": kind,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_min)).timestamp()),
    }
    if department:
        payload["dept"] = department
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGO)

def create_access_token(username: str, role: str, department: Optional[str] = None) -> str:
    return _issue(username, role, department, "access", ACCESS_TTL_MIN)

def create_refresh_token(username: str, role: str, department: Optional[str] = None) -> str:
    return _issue(username, role, department, "refresh", REFRESH_TTL_MIN)

def decode_token(token: str, expected_type: str | None = None) -> Dict[str, Any]:
    data = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    if expected_type and data.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"unexpected token type: {data.get('type')}")
    return data
