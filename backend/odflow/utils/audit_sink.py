from __future__ import annotations
import os, json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List

# Default: backend/var/audit (override with env AUDIT_DIR)
_DEFAULT_DIR = Path(__file__).resolve().parents[2] / "var" / "audit"
AUDIT_DIR = Path(os.getenv("AUDIT_DIR", str(_DEFAULT_DIR)))

def write_event(event: Dict[str, Any]) -> Path:
    """
    Append a single audit event to a day-partitioned .jsonl file.
    Each line is a JSON object.
    """
    AUDIT_DIR.mkdir(parents=True, exist_ok=True)
    day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    fp = AUDIT_DIR / f"{day}.jsonl"
    with fp.open("a", encoding="utf-8") as fh:
        json.dump(event, fh, ensure_ascii=False, default=str)
        fh.write("\n")
    return fp

def list_files() -> List[Dict[str, Any]]:
    if not AUDIT_DIR.exists():
        return []
    return [
        {"name": p.name, "size": p.stat().st_size}
        for p in sorted(AUDIT_DIR.glob("*.jsonl"), reverse=True)
    ]
