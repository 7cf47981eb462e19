from sqlalchemy import Column, Integer, String, Date, DateTime, Text, UniqueConstraint
from datetime import datetime
from odflow.core.database import Base

class PracticeWeek(Base):
    """One week of LeetCode practice for one student."""
    __tablename__ = "practice_weeks"
    __table_args__ = (UniqueConstraint("student_id", "week_number", name="uq_practice_student_week"),)

    id = Column(Integer, primary_key=True)
    student_id = Column(String(128), index=True, nullable=False)
    week_number = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    problems_solved = Column(Integer, default=0, nullable=False)
    target_problems = Column(Integer, default=7, nullable=False)
    easy = Column(Integer, default=0, nullable=False)
    medium = Column(Integer, default=0, nullable=False)
    hard = Column(Integer, default=0, nullable=False)
    status = Column(String(16), default="in-progress", nullable=False)   # not-started | in-progress | completed
    notes = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
