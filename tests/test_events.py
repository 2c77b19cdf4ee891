from contextlib import contextmanager
from datetime import datetime
from unittest.mock import MagicMock

from user_service.core.celery_app import celery_app, events_exchange
from user_service.services.events import PUBLISH_TASK_NAME, EventPublisher, build_event
from user_service.tasks.event_tasks import publish_domain_event


def test_build_event_envelope():
    event = build_event("address.added", {"userId": 7}, "user-service")

    assert event["eventType"] == "address.added"
    assert event["data"] == {"userId": 7}
    assert event["service"] == "user-service"
    assert event["timestamp"].endswith("Z")
    datetime.fromisoformat(event["timestamp"].replace("Z", "+00:00"))
    assert event["messageId"].startswith("address.added-")


def test_publish_hands_envelope_to_dispatcher():
    sent = []
    publisher = EventPublisher(enabled=True, dispatcher=sent.append)

    assert publisher.publish("address.added", {"userId": 1}) is True
    assert sent[0]["eventType"] == "address.added"


def test_publish_swallows_dispatch_errors():
    def failing_dispatch(event):
        raise RuntimeError("queue unavailable")

    publisher = EventPublisher(enabled=True, dispatcher=failing_dispatch)

    assert publisher.publish("address.added", {"userId": 1}) is False


def test_disabled_and_closed_publishers_drop_events():
    sent = []
    disabled = EventPublisher(enabled=False, dispatcher=sent.append)
    assert disabled.publish("address.added", {}) is False

    closed = EventPublisher(enabled=True, dispatcher=sent.append)
    closed.close()
    assert closed.closed is True
    assert closed.publish("address.added", {}) is False
    assert sent == []


def test_close_releases_celery_app_once():
    celery = MagicMock()
    publisher = EventPublisher(celery=celery, enabled=True, dispatcher=lambda event: None)

    publisher.close()
    publisher.close()

    celery.close.assert_called_once()


def test_start_tolerates_unreachable_broker():
    celery = MagicMock()
    celery.connection_for_write.side_effect = ConnectionError("no broker")
    publisher = EventPublisher(celery=celery, enabled=True, dispatcher=lambda event: None)

    publisher.start()

    assert publisher.closed is False


def test_publish_domain_event_task_targets_topic_exchange(monkeypatch):
    producer = MagicMock()

    @contextmanager
    def fake_producer_or_acquire(producer_arg=None):
        yield producer

    monkeypatch.setattr(celery_app, "producer_or_acquire", fake_producer_or_acquire)
    event = build_event("address.added", {"userId": 3}, "user-service")

    result = publish_domain_event(event)

    producer.publish.assert_called_once()
    args, kwargs = producer.publish.call_args
    assert args[0] == event
    assert kwargs["exchange"] is events_exchange
    assert kwargs["routing_key"] == "address.added"
    assert kwargs["delivery_mode"] == 2
    assert kwargs["message_id"] == event["messageId"]
    assert result == {"event_type": "address.added", "message_id": event["messageId"]}
    assert events_exchange.type == "topic"


def test_publish_dispatches_through_injected_celery_client():
    celery = MagicMock()
    publisher = EventPublisher(celery=celery, enabled=True)

    assert publisher.publish("address.added", {"userId": 5}) is True

    celery.send_task.assert_called_once()
    args, kwargs = celery.send_task.call_args
    assert args[0] == publish_domain_event.name == PUBLISH_TASK_NAME
    assert kwargs["args"][0]["eventType"] == "address.added"
    assert kwargs["args"][0]["data"] == {"userId": 5}


def test_publish_without_celery_client_is_dropped():
    publisher = EventPublisher(enabled=True)

    assert publisher.publish("address.added", {"userId": 5}) is False
