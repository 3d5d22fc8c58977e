# backend/app/schemas/__init__.py

# Mission orders
from .mission_order import (
    MissionCreate,
    MissionOut,
    AssignmentOut,
    ValidationIn,
    ServiceInvoice,
)

# Notifications
from .notification import NotificationOut

__all__ = [
    "MissionCreate", "MissionOut", "AssignmentOut", "ValidationIn", "ServiceInvoice",
    "NotificationOut",
]
