"""Fire-and-forget notification dispatch.

Messages are handed to a small thread pool and the caller returns
immediately. Each delivery passes the configured timeout to the channel
adapter. A failed or raising delivery is logged and dropped; it is never
retried and never reaches the code that triggered it.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures

import structlog

from marketplace.channel import EMAIL, SMS, get_channel
from marketplace.config import get_settings

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    def __init__(self, workers: int, timeout: float):
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify")
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def send_email(self, to: str | None, subject: str, body: str) -> Future | None:
        if not to:
            logger.info("Email skipped, no recipient", subject=subject)
            return None
        return self._submit(EMAIL, to, lambda adapter: adapter.send(to, subject, body, timeout=self.timeout))

    def send_sms(self, to: str | None, body: str) -> Future | None:
        if not to:
            logger.info("SMS skipped, no recipient")
            return None
        return self._submit(SMS, to, lambda adapter: adapter.send(to, body, timeout=self.timeout))

    def _submit(self, channel: str, to: str, send) -> Future:
        future = self._executor.submit(self._deliver, channel, to, send)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _deliver(self, channel: str, to: str, send) -> bool:
        try:
            result = send(get_channel(channel))
        except Exception:
            logger.exception("Notification delivery raised", channel=channel, to=to)
            return False
        if result.get("status") != "sent":
            logger.warning("Notification delivery failed", channel=channel, to=to, error=result.get("error"))
            return False
        logger.info("Notification sent", channel=channel, to=to, message_id=result.get("message_id"))
        return True

    def wait(self, timeout: float | None = None) -> None:
        """Block until every queued delivery has finished (tests and shutdown)."""
        with self._lock:
            pending = list(self._pending)
        wait_futures(pending, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


_dispatcher: NotificationDispatcher | None = None
_dispatcher_lock = threading.Lock()


def get_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            settings = get_settings()
            _dispatcher = NotificationDispatcher(
                workers=settings.notification_workers,
                timeout=settings.notification_timeout,
            )
        return _dispatcher


def reset_dispatcher() -> None:
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is not None:
            _dispatcher.shutdown(wait=True)
        _dispatcher = None
