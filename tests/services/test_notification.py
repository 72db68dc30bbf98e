"""
Tests for the notification dispatcher: at-most-once delivery per event key
and sink failures that never fail the caller.
"""

import threading
from uuid import uuid4

import pytest

from procurement_kernel.domain.events import EventType, WorkflowEvent
from procurement_kernel.selectors import MRFSelector
from procurement_kernel.services import (
    ApprovalGate,
    InMemoryNotificationSink,
    NotificationDispatcher,
)
from tests.conftest import START_TIME, make_draft


def event(discriminator="1", aggregate_id=None, event_type=EventType.MRF_APPROVED):
    return WorkflowEvent(
        event_type=event_type,
        aggregate_id=aggregate_id or uuid4(),
        occurred_at=START_TIME,
        discriminator=discriminator,
    )


class BrokenSink:

    def __init__(self):
        self.attempts = 0

    def emit(self, event):
        self.attempts += 1
        raise ConnectionError("mail relay down")


class FlakySink(InMemoryNotificationSink):

    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    def emit(self, event):
        if self.failures:
            self.failures -= 1
            raise TimeoutError("relay timed out")
        super().emit(event)


class TestDispatch:

    def test_duplicate_key_is_dropped(self):
        sink = InMemoryNotificationSink()
        dispatcher = NotificationDispatcher(sink)
        first = event()

        assert dispatcher.dispatch([first, first]) == 1
        assert dispatcher.dispatch([first]) == 0
        assert sink.events == [first]

    def test_distinct_discriminators_both_delivered(self):
        sink = InMemoryNotificationSink()
        aggregate = uuid4()

        delivered = NotificationDispatcher(sink).dispatch([
            event("1", aggregate), event("2", aggregate),
        ])

        assert delivered == 2

    def test_without_sink(self):
        assert NotificationDispatcher().dispatch([event()]) == 0

    def test_failure_is_logged_and_retried_later(self, captured_logs):
        broken = BrokenSink()
        dispatcher = NotificationDispatcher(broken)
        failing = event()

        assert dispatcher.dispatch([failing]) == 0
        assert dispatcher.dispatch([failing]) == 0

        assert broken.attempts == 2
        records = [r for r in captured_logs() if r["message"] == "notification_emit_failed"]
        assert len(records) == 2
        assert records[0]["level"] == "WARNING"
        assert records[0]["exc_type"] == "ConnectionError"
        assert records[0]["event_key"] == failing.event_key

    def test_failed_delivery_releases_the_key(self):
        sink = FlakySink(failures=1)
        dispatcher = NotificationDispatcher(sink)
        failing = event()

        assert dispatcher.dispatch([failing]) == 0
        assert not dispatcher.remembers(failing.event_key)

        assert dispatcher.dispatch([failing]) == 1
        assert sink.events == [failing]

    def test_remembered_keys_are_bounded(self):
        sink = InMemoryNotificationSink()
        dispatcher = NotificationDispatcher(sink, max_remembered_keys=2)
        first, second, third = event("1"), event("2"), event("3")

        assert dispatcher.dispatch([first, second, third]) == 3

        assert not dispatcher.remembers(first.event_key)
        assert dispatcher.remembers(third.event_key)
        # The oldest key was evicted, so it is delivered again.
        assert dispatcher.dispatch([first]) == 1

    def test_duplicate_refreshes_recency(self):
        sink = InMemoryNotificationSink()
        dispatcher = NotificationDispatcher(sink, max_remembered_keys=2)
        first, second, third = event("1"), event("2"), event("3")

        dispatcher.dispatch([first, second, first, third])

        assert dispatcher.remembers(first.event_key)
        assert not dispatcher.remembers(second.event_key)

    def test_bound_must_be_positive(self):
        with pytest.raises(ValueError, match="max_remembered_keys"):
            NotificationDispatcher(max_remembered_keys=0)

    def test_key_is_reserved_while_emit_is_in_flight(self):
        entered, release = threading.Event(), threading.Event()

        class SlowSink(InMemoryNotificationSink):
            def emit(self, event):
                entered.set()
                release.wait(timeout=5)
                super().emit(event)

        sink = SlowSink()
        dispatcher = NotificationDispatcher(sink)
        shared = event()
        results = []
        worker = threading.Thread(target=lambda: results.append(dispatcher.dispatch([shared])))
        worker.start()
        assert entered.wait(timeout=5)

        assert dispatcher.dispatch([shared]) == 0

        release.set()
        worker.join(timeout=5)
        assert results == [1]
        assert sink.events == [shared]


@pytest.fixture
def broken_gate(session, config, deterministic_clock):
    return ApprovalGate(
        session, config=config, clock=deterministic_clock,
        dispatcher=NotificationDispatcher(BrokenSink()),
    )


def test_sink_failure_does_not_undo_the_transition(broken_gate, session, requester):
    mrf = broken_gate.submit_mrf(requester, make_draft())

    assert MRFSelector(session).get(mrf.id).control_number == mrf.control_number
