"""
Celery app for connection recovery workers.

Run a worker with:
    celery -A backend.src.connection_recovery.celery_app worker -Q recovery,maintenance
"""
import os

from celery import Celery

BROKER_URL = os.environ.get("CONNECTION_RECOVERY_BROKER_URL", "redis://localhost:6379/1")
RESULT_BACKEND = os.environ.get("CONNECTION_RECOVERY_RESULT_BACKEND", BROKER_URL)

celery_app = Celery(
    "connection_recovery",
    broker=BROKER_URL,
    backend=RESULT_BACKEND,
    include=["backend.src.connection_recovery.tasks"],
)

celery_app.conf.update(
    task_ignore_result=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "connection_recovery.attempt_connection_recovery": {"queue": "recovery"},
        "connection_recovery.retry_pending_upload": {"queue": "recovery"},
        "connection_recovery.process_batch_refresh": {"queue": "maintenance"},
        "connection_recovery.process_batch_health_validation": {"queue": "maintenance"},
    },
    beat_schedule={
        "refresh-expiring-tokens": {
            "task": "connection_recovery.process_batch_refresh",
            "schedule": 15 * 60,
        },
    },
)

__all__ = ['celery_app']
