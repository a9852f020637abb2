from .attendance import router as attendance_router
from .contacts import router as contacts_router
from .health import router as health_router
from .notifications import router as notifications_router
from .persons import router as persons_router

__all__ = [
    "attendance_router",
    "contacts_router",
    "health_router",
    "notifications_router",
    "persons_router",
]
