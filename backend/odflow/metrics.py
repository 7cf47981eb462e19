# backend/odflow/metrics.py
from prometheus_client import Counter, Gauge

from odflow.models.od_request import ODStatus

# === Core metrics (definitions ONLY here) ===
requests_submitted_total = Counter(
    "od_requests_submitted_total", "OD requests accepted by the submission validator"
)

submissions_rejected_total = Counter(
    "od_submissions_rejected_total", "OD submissions refused by the validator", ["code"]
)

transitions_total = Counter(
    "od_transitions_total", "Approval workflow actions applied", ["role", "action"]
)

escalations_total = Counter(
    "od_escalations_total", "Requests auto-escalated for mentor inaction"
)

notifications_total = Counter(
    "od_notifications_total", "Notifications emitted", ["severity"]
)

open_requests_gauge = Gauge(
    "od_requests_by_status", "Number of OD requests by status", ["status"]
)

def init_metrics_zero():
    # create label combos at 0 so Grafana never sees "no data"
    for code in ("invalid_date_range", "event_not_completed", "late_submission",
                 "practice_incomplete", "no_tracking_data"):
        submissions_rejected_total.labels(code=code).inc(0)
    for sev in ("info", "success", "warning", "error"):
        notifications_total.labels(severity=sev).inc(0)
    for s in ODStatus:
        open_requests_gauge.labels(status=s.value).set(0)
    requests_submitted_total.inc(0)
    escalations_total.inc(0)

def refresh_status_gauge(db):
    from sqlalchemy import func
    from odflow.models.od_request import ODRequest
    counts = dict(db.query(ODRequest.status, func.count(ODRequest.id)).group_by(ODRequest.status).all())
    for s in ODStatus:
        open_requests_gauge.labels(status=s.value).set(counts.get(s.value, 0))
