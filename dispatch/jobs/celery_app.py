"""Celery worker and beat configuration"""

from celery import Celery
from dispatch.config import settings

celery_app = Celery(
    "dispatch",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["dispatch.jobs.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=3600,
    timezone="UTC",
    enable_utc=True,
    # SMS has its own queue
    task_routes={
        "send_order_sms": {"queue": "notifications"},
        "retry_agent_assignment": {"queue": "dispatch"},
    },
    task_time_limit=120,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "retry-agent-assignment": {
            "task": "retry_agent_assignment",
            "schedule": settings.assignment_retry_interval_seconds,
            # Drop runs not started before the next tick
            "options": {"expires": settings.assignment_retry_interval_seconds},
        },
    },
)
