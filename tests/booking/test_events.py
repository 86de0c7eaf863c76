"""Outbox relay and retry scheduler tests."""
import asyncio
from datetime import datetime

import pytest

from booking.events import APPOINTMENT_CREATED, OutboxRelay
from booking.scheduler import OutboxScheduler
from database.models import OutboxEvent

TEN = datetime(2030, 1, 1, 10, 0)


class TestOutboxRelay:
    """OutboxRelay dispatch and retry behavior."""

    def test_payload(self, db, book, salon):
        appointment = book(TEN, services=[salon.cut, salon.brush]).appointment
        event = db.outbox.get_all(OutboxEvent)[0]
        assert event.topic == APPOINTMENT_CREATED
        assert event.payload == {
            "appointment_id": appointment.id,
            "client_id": salon.maria.id,
            "collaborator_id": salon.ana.id,
            "service_ids": [salon.cut.id, salon.brush.id],
            "start": "2030-01-01T10:00:00",
            "end": "2030-01-01T11:15:00",
            "origin": "app",
        }

    def test_dispatch_without_dispatcher(self, db, book):
        book(TEN)
        relay = OutboxRelay(db.outbox)
        event = db.outbox.get_all(OutboxEvent)[0]
        assert relay.dispatch(event.id) is None
        assert relay.dispatch_pending() == {"sent": 0, "failed": 0}

    def test_sent_event_not_redispatched(self, db, service, book, dispatcher):
        book(TEN)
        event = db.outbox.get_all(OutboxEvent)[0]
        assert service.relay.dispatch(event.id) is None
        assert len(dispatcher.calls) == 1

    def test_retry_after_failure(self, db, service, book, dispatcher):
        dispatcher.fail = True
        book(TEN)
        dispatcher.fail = False

        assert service.relay.dispatch_pending() == {"sent": 1, "failed": 0}
        event = db.outbox.get_all(OutboxEvent)[0]
        assert event.status == "sent"
        assert event.attempts == 2
        assert event.last_error is None
        assert service.relay.dispatch_pending() == {"sent": 0, "failed": 0}

    def test_gives_up_after_max_attempts(self, db, service, book, dispatcher, config):
        dispatcher.fail = True
        book(TEN)
        for _ in range(config.outbox_max_attempts):
            service.relay.dispatch_pending()

        event = db.outbox.get_all(OutboxEvent)[0]
        assert event.status == "failed"
        assert event.attempts == config.outbox_max_attempts
        assert len(dispatcher.calls) == config.outbox_max_attempts

    def test_missing_event(self, service):
        assert service.relay.dispatch(9999) is None


@pytest.fixture
def event_loop_for_scheduler():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


class TestOutboxScheduler:
    """OutboxScheduler wiring."""

    def test_job_registered(self, service, event_loop_for_scheduler):
        scheduler = OutboxScheduler(service.relay, interval_seconds=30,
                                    event_loop=event_loop_for_scheduler)
        job = scheduler.scheduler.get_job(OutboxScheduler.JOB_ID)
        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.trigger.interval.total_seconds() == 30

    def test_run_once_retries(self, service, book, dispatcher, event_loop_for_scheduler):
        dispatcher.fail = True
        book(TEN)
        dispatcher.fail = False
        scheduler = OutboxScheduler(service.relay, event_loop=event_loop_for_scheduler)
        assert scheduler.run_once() == {"sent": 1, "failed": 0}

    def test_run_once_swallows_errors(self, event_loop_for_scheduler):
        class BrokenRelay:
            def dispatch_pending(self):
                raise RuntimeError("database gone")

        scheduler = OutboxScheduler(BrokenRelay(), event_loop=event_loop_for_scheduler)
        assert scheduler.run_once() == {"sent": 0, "failed": 0}

    def test_stop_before_start(self, service, event_loop_for_scheduler):
        scheduler = OutboxScheduler(service.relay, event_loop=event_loop_for_scheduler)
        scheduler.stop()
        assert scheduler.scheduler.running is False
