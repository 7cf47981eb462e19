from sqlalchemy import Column, Integer, String, Date, DateTime, Text, JSON, Boolean
from datetime import datetime
import enum

from odflow.core.database import Base

class ODStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    MENTOR_APPROVED = "mentor_approved"
    MENTOR_REJECTED = "mentor_rejected"
    HOD_APPROVED = "hod_approved"
    HOD_REJECTED = "hod_rejected"
    PRINCIPAL_APPROVED = "principal_approved"
    PRINCIPAL_REJECTED = "principal_rejected"
    CERTIFICATE_UPLOADED = "certificate_uploaded"
    CERTIFICATE_APPROVED = "certificate_approved"
    COMPLETED = "completed"

    @property
    def is_rejected(self) -> bool:
        return self.value.endswith("_rejected")


class ODRequest(Base):
    __tablename__ = "od_requests"

    id = Column(Integer, primary_key=True, index=True)

    # student identity (denormalised at submission time)
    student_id = Column(String(128), index=True, nullable=False)
    student_name = Column(String(255), nullable=False)
    roll_number = Column(String(64), nullable=True)
    department = Column(String(128), index=True, nullable=False)
    year = Column(String(16), nullable=False)            # "1st" | "2" | ...

    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=False)
    submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False)

    reason = Column(String(128), nullable=False)         # category, e.g. "hackathon"
    detailed_reason = Column(String(1000), nullable=True)
    description = Column(Text, nullable=True)
    od_periods = Column(JSON, default=list)              # ["09:00-10:00", ...]

    status = Column(String(32), default=ODStatus.SUBMITTED.value, index=True, nullable=False)

    mentor_feedback = Column(Text, nullable=True)
    hod_feedback = Column(Text, nullable=True)
    principal_feedback = Column(Text, nullable=True)
    mentor_approved_by = Column(String(255), nullable=True)
    mentor_approved_at = Column(DateTime, nullable=True)
    hod_approved_by = Column(String(255), nullable=True)
    hod_approved_at = Column(DateTime, nullable=True)
    principal_approved_by = Column(String(255), nullable=True)
    principal_approved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    erp_logged = Column(Boolean, default=False, nullable=False)
    erp_logged_at = Column(DateTime, nullable=True)

    # set only by the escalation monitor
    auto_escalated = Column(Boolean, default=False, nullable=False)
    escalated_at = Column(DateTime, nullable=True)
    escalation_reason = Column(String(255), nullable=True)

    # {"overridden_by", "overridden_at", "justification", "original_status", "original_rejection_reason"}
    hod_override = Column(JSON, nullable=True)

    exception_reviewed = Column(Boolean, default=False, nullable=False)
    exception_approved = Column(Boolean, nullable=True)
    exception_remarks = Column(Text, nullable=True)
    exception_reviewed_by = Column(String(255), nullable=True)
    exception_reviewed_at = Column(DateTime, nullable=True)

    prize_info = Column(JSON, nullable=True)             # {"won_prize", "position", "cash_amount"}
    subject_attendance = Column(JSON, default=list)      # [{"subject", "periods", "faculty"}]
    attachments = Column(JSON, default=list)             # ["s3://..." | "https://..."]
    certificate_ref = Column(String(1000), nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_enum(self) -> ODStatus:
        return ODStatus(self.status)
