"""Storage module for users, access events and image artifacts."""

from .database import PersistentStore
from .images import ImageArchive
from .access_log import AccessLogger, RecordResult
from .models import AccessEvent, AccessEventFilter, EventSource, Outcome, User

__all__ = [
    "PersistentStore",
    "ImageArchive",
    "AccessLogger",
    "RecordResult",
    "AccessEvent",
    "AccessEventFilter",
    "EventSource",
    "Outcome",
    "User",
]
