from celery import Task
from celery.utils.log import get_task_logger

from user_service.core.celery_app import celery_app, events_exchange

logger = get_task_logger(__name__)


class EventTask(Task):
    """
    Base task for domain event delivery.
    Retries with backoff while the exchange is unreachable.
    """
    autoretry_for = (Exception,)
    retry_kwargs = {"max_retries": 5}
    retry_backoff = True
    retry_backoff_max = 300
    retry_jitter = True
    acks_late = True


@celery_app.task(base=EventTask, bind=True, name="user_service.tasks.event_tasks.publish_domain_event")
def publish_domain_event(self, event: dict):
    """Publish a domain event envelope to the shared topic exchange."""
    routing_key = event["eventType"]

    with celery_app.producer_or_acquire() as producer:
        producer.publish(
            event,
            exchange=events_exchange,
            routing_key=routing_key,
            declare=[events_exchange],
            serializer="json",
            delivery_mode=2,
            message_id=event.get("messageId"),
            retry=True,
        )

    logger.info("Published event %s (%s)", routing_key, event.get("messageId"))
    return {"event_type": routing_key, "message_id": event.get("messageId")}
