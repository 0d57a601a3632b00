# haatbazaar/worker/celery_app.py
from celery import Celery

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger

if not settings.CELERY_BROKER_URL:
    logger.warning("CELERY_BROKER_URL is not set (REDIS_URL missing); the worker cannot connect to a broker.")

celery_app = Celery(
    "haatbazaar",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["haatbazaar.worker.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "expire-stale-negotiations": {
            "task": "negotiations.expire_stale",
            "schedule": float(settings.NEGOTIATION_SWEEP_INTERVAL_SECONDS),
        },
        "release-abandoned-inventory": {
            "task": "inventory.release_abandoned",
            "schedule": float(settings.INVENTORY_SWEEP_INTERVAL_SECONDS),
        },
        "dispatch-notification-outbox": {
            "task": "notifications.dispatch_outbox",
            "schedule": float(settings.OUTBOX_POLL_INTERVAL_SECONDS) * 15,
        },
    },
)
