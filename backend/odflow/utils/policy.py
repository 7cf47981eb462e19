# odflow/utils/policy.py
from __future__ import annotations
import copy
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

_DEFAULT_PATH = Path(__file__).resolve().parents[2] / "policies" / "policy.yaml"
POLICY_PATH = Path(os.getenv("POLICY_PATH", str(_DEFAULT_PATH)))

DEFAULT_POLICY: dict = {
    "od_limit": 5,
    "submission_window_days": 3,
    "escalation_hours": 24,
    "escalation_warning_hours": 12,
    "exception_keywords": ["prize", "hackathon", "competition", "conference", "award"],
    "year_requirements": {
        1: ["easy"],
        2: ["easy", "medium"],
        3: ["easy", "medium", "hard"],
        4: ["easy", "medium", "hard"],
    },
    "default_target_problems": 7,
}

# cache in memory
_POLICY: Optional[dict] = None


# -------------------------- loading --------------------------

def _load_policy_from_file() -> dict:
    merged = copy.deepcopy(DEFAULT_POLICY)
    if not POLICY_PATH.exists():
        logger.info("policy file %s not found; using defaults", POLICY_PATH)
        return merged
    with open(POLICY_PATH, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        logger.warning("policy file %s is not a mapping; using defaults", POLICY_PATH)
        return merged
    for key, val in data.items():
        if key not in DEFAULT_POLICY:
            logger.warning("ignoring unknown policy key '%s'", key)
            continue
        merged[key] = val
    merged["year_requirements"] = {int(k): list(v) for k, v in merged["year_requirements"].items()}
    return merged

def get_policy() -> dict:
    global _POLICY
    if _POLICY is None:
        _POLICY = _load_policy_from_file()
    return _POLICY

def reload_policy() -> dict:
    global _POLICY
    _POLICY = _load_policy_from_file()
    return _POLICY


# -------------------------- accessors --------------------------

def od_limit() -> int:
    return int(get_policy()["od_limit"])

def submission_window_days() -> int:
    return int(get_policy()["submission_window_days"])

def escalation_hours() -> int:
    return int(get_policy()["escalation_hours"])

def escalation_warning_hours() -> int:
    return int(get_policy()["escalation_warning_hours"])

def exception_keywords() -> List[str]:
    return [str(k).lower() for k in get_policy()["exception_keywords"]]

def year_requirements() -> Dict[int, List[str]]:
    return get_policy()["year_requirements"]

def default_target_problems() -> int:
    return int(get_policy()["default_target_problems"])
