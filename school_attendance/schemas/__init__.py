from .attendance import (
    ARRIVAL_STATUSES,
    QUALIFYING_STATUSES,
    AttendanceEventCreate,
    AttendanceEventRead,
    AttendanceStatus,
)
from .contact import ContactCreate, ContactRead, NotificationPreferences
from .identity import IdentityCreate, IdentityRead, IdentitySummary
from .metadata import (
    CaptureMetadata,
    RegistrationMetadata,
    SystemMetadata,
    UnknownMetadata,
    parse_metadata,
)
from .notification import (
    ChannelStatus,
    NotificationLogCreate,
    NotificationLogRead,
    NotificationStatus,
    Recipient,
)

__all__ = [
    "ARRIVAL_STATUSES",
    "QUALIFYING_STATUSES",
    "AttendanceEventCreate",
    "AttendanceEventRead",
    "AttendanceStatus",
    "ContactCreate",
    "ContactRead",
    "NotificationPreferences",
    "IdentityCreate",
    "IdentityRead",
    "IdentitySummary",
    "CaptureMetadata",
    "RegistrationMetadata",
    "SystemMetadata",
    "UnknownMetadata",
    "parse_metadata",
    "ChannelStatus",
    "NotificationLogCreate",
    "NotificationLogRead",
    "NotificationStatus",
    "Recipient",
]
