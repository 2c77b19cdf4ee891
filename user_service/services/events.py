import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import structlog
from celery import Celery

from user_service.core.config import settings

logger = structlog.get_logger()

EventDispatcher = Callable[[Dict[str, Any]], Any]
PUBLISH_TASK_NAME = "user_service.tasks.event_tasks.publish_domain_event"


def build_event(event_type: str, data: Dict[str, Any], service: str) -> Dict[str, Any]:
    """Wrap event data in the envelope shared by all platform services."""
    now = datetime.now(timezone.utc)
    return {
        "eventType": event_type,
        "data": data,
        "timestamp": now.isoformat().replace("+00:00", "Z"),
        "service": service,
        "messageId": f"{event_type}-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:7]}",
    }


class EventPublisher:
    """
    Fire-and-forget publisher for domain events.

    Constructed once at startup and injected into services. ``publish`` hands
    the envelope to the Celery queue and never raises: a failed hand-off is
    logged and dropped so the caller's committed work is unaffected.
    """

    def __init__(
        self,
        celery: Optional[Celery] = None,
        service_name: str = settings.SERVICE_NAME,
        enabled: bool = settings.EVENTS_ENABLED,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        self.service_name = service_name
        self.enabled = enabled
        self._celery = celery
        self._dispatch = dispatcher or self._send_task
        self._closed = False

    def _send_task(self, event: Dict[str, Any]) -> Any:
        if self._celery is None:
            raise RuntimeError("No Celery client configured for event dispatch")

        return self._celery.send_task(
            PUBLISH_TASK_NAME,
            args=[event],
            retry=True,
            retry_policy={
                "max_retries": 2,
                "interval_start": 0,
                "interval_step": 0.2,
                "interval_max": 0.5,
            },
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Check that the broker is reachable; events stay best-effort if not."""
        if not self.enabled or self._celery is None:
            logger.info("event_publisher_started", enabled=self.enabled, broker_checked=False)
            return

        try:
            with self._celery.connection_for_write() as connection:
                connection.ensure_connection(max_retries=1)
        except Exception as exc:
            logger.warning("event_broker_unreachable", error=str(exc))
            return

        logger.info("event_publisher_started", enabled=True, broker_checked=True)

    def publish(self, event_type: str, data: Dict[str, Any]) -> bool:
        if self._closed or not self.enabled:
            logger.warning(
                "event_dropped",
                event_type=event_type,
                reason="closed" if self._closed else "disabled",
            )
            return False

        event = build_event(event_type, data, self.service_name)
        try:
            self._dispatch(event)
        except Exception as exc:
            logger.error(
                "event_publish_failed",
                event_type=event_type,
                message_id=event["messageId"],
                error=str(exc),
            )
            return False

        logger.info("event_published", event_type=event_type, message_id=event["messageId"])
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._celery is not None:
            self._celery.close()
        logger.info("event_publisher_closed")
