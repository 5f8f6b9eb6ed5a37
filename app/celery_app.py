from celery import Celery
from celery.schedules import crontab

from app.config import settings

# Create Celery app
celery_app = Celery(
    "checkout",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.tasks"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes max for any task
    task_soft_time_limit=540,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,
)

celery_app.conf.beat_schedule = {
    "pending-subscriptions-sweep": {
        "task": "reconcile_pending_subscriptions",
        "schedule": crontab(minute="*/5"),
        "args": [],
    },
    "iugu-plan-sync-hourly": {
        "task": "sync_plan_catalog",
        "schedule": crontab(minute=0),  # every hour on the hour
        "args": [],
    },
}
