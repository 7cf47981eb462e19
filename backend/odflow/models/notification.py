from sqlalchemy import Column, Integer, String, DateTime, Text
from datetime import datetime
from odflow.core.database import Base

class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True)
    severity = Column(String(16), nullable=False)        # info | success | warning | error
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    request_id = Column(Integer, index=True, nullable=True)
    student_id = Column(String(128), index=True, nullable=True)
    department = Column(String(128), index=True, nullable=True)
    dedup_key = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

class KVEntry(Base):
    """Generic string-keyed store; used for once-per-day notification guards."""
    __tablename__ = "kv_entries"
    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
