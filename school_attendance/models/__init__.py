from .base import Base
from .attendance import AttendanceEvent
from .contact import Contact
from .identity import IdentityRecord
from .notification_log import NotificationLog

# for wildcard imports
__all__ = ["Base", "AttendanceEvent", "Contact", "IdentityRecord", "NotificationLog"]
