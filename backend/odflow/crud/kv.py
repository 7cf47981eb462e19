from typing import Optional
from sqlalchemy.orm import Session

from odflow.models.notification import KVEntry
from odflow.utils.clock import utcnow

# These helpers do not commit; callers commit together with the work the key guards.

def kv_get(db: Session, key: str) -> Optional[str]:
    row = db.get(KVEntry, key)
    return row.value if row else None

def kv_set(db: Session, key: str, value: str) -> None:
    row = db.get(KVEntry, key)
    if row is None:
        db.add(KVEntry(key=key, value=value, updated_at=utcnow()))
    else:
        row.value = value
        row.updated_at = utcnow()
    db.flush()

def kv_delete(db: Session, key: str) -> bool:
    row = db.get(KVEntry, key)
    if row is None:
        return False
    db.delete(row)
    db.flush()
    return True
