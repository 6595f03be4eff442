"""
Alert Thread - Posts security alerts to a webhook.
Non-blocking for the recognition loop: alerts are queued and dropped
when the queue is full.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests

from ..storage.models import utc_timestamp


logger = logging.getLogger(__name__)


@dataclass
class Alert:
    """One alert for the webhook."""
    kind: str  # "unknown_face", "actuator_failure", ...
    message: str
    label: Optional[int] = None
    confidence: float = 0.0
    image_path: Optional[str] = None
    timestamp: str = field(default_factory=utc_timestamp)

    def to_payload(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "label": self.label,
            "confidence": self.confidence,
            "image_path": self.image_path,
            "timestamp": self.timestamp,
        }


class AlertNotifier(threading.Thread):
    """
    Background webhook sender.

    Responsibilities:
    - Rate-limit alerts per kind (cooldown)
    - Deliver without blocking the caller
    - Handle network failures gracefully
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        cooldown_seconds: float = 30.0,
        timeout: float = 10.0,
        queue_size: int = 32,
    ):
        super().__init__(name="AlertNotifier", daemon=True)

        self.webhook_url = webhook_url
        self.cooldown_seconds = cooldown_seconds
        self.timeout = timeout

        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._stop_event = threading.Event()
        self._last_sent: Dict[str, float] = {}
        self._cooldown_lock = threading.Lock()

        # Stats
        self.sent = 0
        self.failed = 0
        self.suppressed = 0

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def notify(self, alert: Alert) -> bool:
        """Queue an alert. Returns False if disabled, rate-limited or full."""
        if not self.enabled:
            return False

        now = time.monotonic()
        with self._cooldown_lock:
            last = self._last_sent.get(alert.kind)
            if last is not None and now - last < self.cooldown_seconds:
                self.suppressed += 1
                return False
            self._last_sent[alert.kind] = now

        try:
            self._queue.put_nowait(alert)
        except queue.Full:
            logger.warning(f"Alert queue full, dropping {alert.kind} alert")
            return False
        return True

    def run(self):
        logger.info("Alert thread started")
        while not self._stop_event.is_set():
            try:
                alert = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            self._send(alert)
        logger.info("Alert thread stopped")

    def stop(self):
        """Signal thread to stop."""
        self._stop_event.set()

    def _send(self, alert: Alert):
        try:
            response = requests.post(self.webhook_url, json=alert.to_payload(), timeout=self.timeout)
            response.raise_for_status()
            self.sent += 1
            logger.info(f"Alert delivered: {alert.kind}")
        except requests.exceptions.RequestException as e:
            self.failed += 1
            logger.warning(f"Alert delivery failed (network): {e}")

    def get_status(self) -> dict:
        return {
            "enabled": self.enabled,
            "sent": self.sent,
            "failed": self.failed,
            "suppressed": self.suppressed,
            "queued": self._queue.qsize(),
        }


def create_alert_notifier_from_config(config) -> AlertNotifier:
    return AlertNotifier(
        webhook_url=config.ALERT_WEBHOOK_URL,
        cooldown_seconds=config.ALERT_COOLDOWN_SECONDS,
    )
