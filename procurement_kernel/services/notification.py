"""
NotificationDispatcher -- best-effort delivery of workflow events.

Responsibility:
    Hands committed workflow events to the notification sink.  Delivery is
    fire-and-forget: the state transition that produced an event has
    already been committed, so a sink failure is logged and suppressed and
    never reaches the caller as a workflow error.

Architecture position:
    Kernel > Services.  Called by the workflow services AFTER their
    transaction commits; never inside it.

Invariants enforced:
    - Each event key is delivered at most once per dispatcher, so a
      redelivered event (same aggregate, type and discriminator) is
      dropped rather than notifying twice.  The key is reserved under the
      lock before the sink is called, so two threads dispatching the same
      event cannot both deliver it.
    - Only the most recent ``max_remembered_keys`` keys are remembered;
      older keys are evicted least-recently-seen first.

Failure modes:
    - Sink raises: logged at WARNING with exc_info, the reservation is
      released so a later redelivery can succeed, dispatch continues with
      the next event.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Iterable

from procurement_kernel.domain.events import EventType, WorkflowEvent
from procurement_kernel.domain.ports import NotificationSink
from procurement_kernel.logging_config import get_logger

logger = get_logger("services.notification")


class NotificationDispatcher:
    """Deduplicating, failure-tolerant front for a ``NotificationSink``."""

    DEFAULT_MAX_REMEMBERED_KEYS = 10_000

    def __init__(
        self,
        sink: NotificationSink | None = None,
        max_remembered_keys: int = DEFAULT_MAX_REMEMBERED_KEYS,
    ):
        if max_remembered_keys < 1:
            raise ValueError("max_remembered_keys must be at least 1")
        self._sink = sink
        self._max_keys = max_remembered_keys
        # Insertion-ordered: oldest key first.
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def sink(self) -> NotificationSink | None:
        return self._sink

    def dispatch(self, events: Iterable[WorkflowEvent]) -> int:
        """Deliver ``events`` in order.  Returns how many reached the sink."""
        delivered = 0
        for event in events:
            if self._deliver(event):
                delivered += 1
        return delivered

    def remembers(self, event_key: str) -> bool:
        with self._lock:
            return event_key in self._seen

    def _reserve(self, key: str) -> bool:
        with self._lock:
            if key in self._seen:
                self._seen.move_to_end(key)
                return False
            self._seen[key] = None
            while len(self._seen) > self._max_keys:
                self._seen.popitem(last=False)
            return True

    def _release(self, key: str) -> None:
        with self._lock:
            self._seen.pop(key, None)

    def _deliver(self, event: WorkflowEvent) -> bool:
        if self._sink is None:
            return False
        key = event.event_key
        if not self._reserve(key):
            logger.debug("notification_duplicate_dropped", extra={"event_key": key})
            return False

        try:
            self._sink.emit(event)
        except Exception:
            # Notification failure never fails the committed transition.
            self._release(key)
            logger.warning(
                "notification_emit_failed",
                extra={"event_key": key, "event_type": event.event_type.value},
                exc_info=True,
            )
            return False

        logger.debug("notification_emitted", extra={
            "event_key": key,
            "event_type": event.event_type.value,
        })
        return True


class InMemoryNotificationSink:
    """Sink that keeps every received event.  Used by tests and embedding hosts."""

    def __init__(self) -> None:
        self.events: list[WorkflowEvent] = []

    def emit(self, event: WorkflowEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[WorkflowEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()
