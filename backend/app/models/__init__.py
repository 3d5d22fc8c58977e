# backend/app/models/__init__.py
# IMPORTANT: Use Base from app.db so every model registers on the same metadata
from app.db import Base

# import all model modules so tables get registered on Base.metadata
from .mission_order import MissionOrder
from .date_modification import DateModification
from .notification import Notification
from .activity import ActivityLog


__all__ = [
    "Base",
    "MissionOrder",
    "DateModification",
    "Notification",
    "ActivityLog",
]
