"""Fake SMS adapter: records sent messages for testing."""

import threading
import time
from uuid import uuid4

from marketplace.channel.sms_port import SMSPort


class FakeSMSAdapter(SMSPort):
    """SMS adapter that records messages in memory for test assertions."""

    def __init__(self):
        self.sent_messages: list[dict] = []
        self._lock = threading.Lock()
        self.configure()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "SMS delivery failed",
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.error = error
        self.delay = delay

    def send(self, to: str, body: str, timeout: float | None = None) -> dict:
        if self.delay:
            time.sleep(min(self.delay, timeout) if timeout else self.delay)
        if self.error is not None:
            raise self.error
        if not self.should_succeed:
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"sms-{uuid4().hex[:12]}"
        with self._lock:
            self.sent_messages.append({"message_id": message_id, "to": to, "body": body})
        return {"message_id": message_id, "status": "sent"}

    def reset(self):
        """Clear sent messages (useful between tests)."""
        with self._lock:
            self.sent_messages.clear()
        self.configure()
