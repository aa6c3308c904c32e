import logging

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from fintrack.core.config import settings

celery_app = Celery(
    "fintrack",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.sync_worker_concurrency,
    task_default_queue=settings.sync_queue_name,
    task_routes={"fintrack.services.sync.*": {"queue": settings.sync_queue_name}},
)

# ─── Scheduled tasks ──────────────────────────
celery_app.conf.beat_schedule = {
    "sync-transactions-daily": {
        "task": "fintrack.services.sync.sync_all_accounts",
        "schedule": crontab(hour=settings.sync_schedule_hour, minute=0),
    },
}

# Explicitly include task modules so the worker registers them on startup.
celery_app.conf.include = [
    "fintrack.services.sync",
]


@setup_logging.connect
def _configure_logging(**kwargs):
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
