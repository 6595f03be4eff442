"""Records owned by the persistent store."""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Outcome(Enum):
    """Result recorded for an access decision."""
    ADMITTED = "admitted"
    DENIED = "denied"
    DENIED_ERROR = "denied_error"  # detector or actuator failure


class EventSource(Enum):
    """Which entry point produced the decision."""
    RECOGNITION = "recognition"
    REMOTE = "remote"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


@dataclass(frozen=True)
class User:
    """An enrolled person."""
    label: int
    name: str
    image_path: Optional[str]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class AccessEvent:
    """One logged access decision. Append-only."""
    timestamp: str
    matched_label: Optional[int]
    confidence: float
    outcome: Outcome
    source: EventSource = EventSource.RECOGNITION
    captured_image_path: Optional[str] = None
    image_persist_failed: bool = False
    error: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def create(
        cls,
        outcome: Outcome,
        matched_label: Optional[int] = None,
        confidence: float = 0.0,
        source: EventSource = EventSource.RECOGNITION,
        error: Optional[str] = None,
    ) -> "AccessEvent":
        return cls(
            timestamp=utc_timestamp(),
            matched_label=matched_label,
            confidence=float(confidence),
            outcome=outcome,
            source=source,
            error=error,
        )

    def with_image(self, path: Optional[str], failed: bool = False) -> "AccessEvent":
        return replace(self, captured_image_path=path, image_persist_failed=failed)

    def with_id(self, event_id: int) -> "AccessEvent":
        return replace(self, id=event_id)


@dataclass
class AccessEventFilter:
    """Query filter for browsing the access log."""
    outcome: Optional[Outcome] = None
    label: Optional[int] = None
    source: Optional[EventSource] = None
    since: Optional[str] = None
    until: Optional[str] = None
    limit: int = 100
