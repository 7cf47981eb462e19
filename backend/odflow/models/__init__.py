from .od_request import ODRequest, ODStatus
from .practice import PracticeWeek
from .notification import Notification, KVEntry
from .audit import AuditLog
