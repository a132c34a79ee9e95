from celery import Celery
from celery.schedules import schedule
from celery.signals import setup_logging
from kombu import Queue

from app.core.config import settings
from app.infrastructure.logging.setup import configure_logging

celery_app = Celery(
    "social_publisher",
    broker=settings.cache_redis_url,
    backend=settings.cache_redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue="publishing",
    task_queues=(
        Queue("publishing"),
        Queue("scheduler"),
    ),
    task_routes={
        "workers.tasks.publish_destination": {"queue": "publishing"},
        "workers.tasks.schedule_due_posts": {"queue": "scheduler"},
    },
    beat_schedule={
        "publish-scheduler-sweep": {
            "task": "workers.tasks.schedule_due_posts",
            "schedule": schedule(settings.scheduler_interval_seconds),
            "options": {"queue": "scheduler"},
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging()


celery_app.autodiscover_tasks(["workers"])
