from celery import Celery
from kombu import Exchange
from user_service.core.config import settings

celery_app = Celery(
    "user_service",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["user_service.tasks.event_tasks"]
)

# Celery Configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    task_ignore_result=True,

    task_time_limit=60,
    task_soft_time_limit=45,

    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=1000,

    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.task_routes = {
    "user_service.tasks.event_tasks.*": {"queue": "events"},
}

# Topic exchange shared by every food-delivery service.
events_exchange = Exchange(settings.EVENTS_EXCHANGE, type="topic", durable=True)
