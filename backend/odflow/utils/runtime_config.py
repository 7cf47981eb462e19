import os
from threading import RLock
from typing import Dict

_lock = RLock()
_state: Dict[str, str] = {
    # seed from environment on boot; can be overridden at runtime
    "SLACK_WEBHOOK_URL": os.getenv("SLACK_WEBHOOK_URL", "").strip(),
    "SLACK_CHANNEL_LABEL": os.getenv("SLACK_CHANNEL_LABEL", "OD Flow").strip(),
}

def set_value(key: str, value: str | None) -> None:
    with _lock:
        _state[key] = (value or "").strip()

def get_value(key: str) -> str:
    with _lock:
        return _state.get(key, "")

def set_slack_webhook(url: str | None) -> None:
    set_value("SLACK_WEBHOOK_URL", url)

def get_slack_webhook() -> str:
    return get_value("SLACK_WEBHOOK_URL")

def snapshot() -> Dict[str, str]:
    with _lock:
        out = dict(_state)
    if out.get("SLACK_WEBHOOK_URL"):
        out["SLACK_WEBHOOK_URL"] = out["SLACK_WEBHOOK_URL"][:30] + "..."
    return out
