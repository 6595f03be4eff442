"""
Access Logger - persists every access decision.

Ordering per event:
1. Captured frame written to the image archive
2. Row appended, referencing the artifact only if step 1 succeeded

A failing row write is retried once. If it still fails the event is kept
in memory (degraded) and flushed ahead of the next write. While any event
is held, new events queue behind it so rows keep capture order.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from ..exceptions import StorageError
from .database import PersistentStore
from .images import ImageArchive
from .models import AccessEvent


logger = logging.getLogger(__name__)


@dataclass
class RecordResult:
    """Outcome of AccessLogger.record()."""
    event: AccessEvent
    persisted: bool
    degraded: bool = False


class AccessLogger:
    """Writes image artifact then structured row for each access decision."""

    def __init__(
        self,
        store: PersistentStore,
        archive: ImageArchive,
        retry_delay: float = 0.05,
        max_pending: int = 1000,
    ):
        self.store = store
        self.archive = archive
        self.retry_delay = retry_delay
        self._pending: Deque[AccessEvent] = deque()
        self._max_pending = max_pending
        self._lock = threading.Lock()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def record(self, event: AccessEvent, frame_image: Optional[bytes] = None) -> RecordResult:
        """
        Log an access event.

        Args:
            event: Event without image reference
            frame_image: Encoded frame that triggered the decision

        Returns:
            RecordResult; persisted=False means the event is held in memory
        """
        if frame_image:
            try:
                path = self.archive.save(frame_image)
                event = event.with_image(path)
            except StorageError as e:
                logger.error(f"Image persist failed, logging event without image: {e}")
                event = event.with_image(None, failed=True)

        with self._lock:
            self._flush_locked()
            if self._pending:
                # Older events are still unwritten; row ids must stay in capture order
                self._hold_locked(event)
                logger.error(
                    f"Access event queued behind {len(self._pending) - 1} held events: "
                    f"{event.outcome.value} label={event.matched_label} conf={event.confidence:.2f}"
                )
                return RecordResult(event=event, persisted=False, degraded=True)

            try:
                stored = self._append_with_retry(event)
            except StorageError as e:
                self._hold_locked(event)
                logger.error(
                    f"Access event held in memory after retry ({e}): "
                    f"{event.outcome.value} label={event.matched_label} conf={event.confidence:.2f}"
                )
                return RecordResult(event=event, persisted=False, degraded=True)

        logger.info(
            f"Logged access event #{stored.id}: {stored.outcome.value} "
            f"(label={stored.matched_label}, conf={stored.confidence:.2f})"
        )
        return RecordResult(event=stored, persisted=True)

    def flush(self) -> int:
        """Try to write held events. Returns how many are still pending."""
        with self._lock:
            self._flush_locked()
            return len(self._pending)

    def _append_with_retry(self, event: AccessEvent) -> AccessEvent:
        try:
            return self.store.append_access_event(event)
        except StorageError as e:
            logger.warning(f"Access event write failed, retrying once: {e}")
            time.sleep(self.retry_delay)
            return self.store.append_access_event(event)

    def _flush_locked(self):
        while self._pending:
            event = self._pending[0]
            try:
                self.store.append_access_event(event)
            except StorageError as e:
                logger.warning(f"Pending access events still unwritable ({len(self._pending)}): {e}")
                return
            self._pending.popleft()
            logger.info("Flushed held access event")

    def _hold_locked(self, event: AccessEvent):
        if len(self._pending) >= self._max_pending:
            dropped = self._pending.popleft()
            logger.error(f"Pending buffer full, dropping oldest held event from {dropped.timestamp}")
        self._pending.append(event)
