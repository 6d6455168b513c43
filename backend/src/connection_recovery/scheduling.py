"""Job scheduling on top of Celery."""
import logging
from typing import Any

from celery import Celery

logger = logging.getLogger(__name__)


class CeleryScheduler:
    """Scheduler that hands jobs to Celery workers by task name."""

    def __init__(self, app: Celery, task_prefix: str = "connection_recovery."):
        self.app = app
        self.task_prefix = task_prefix

    def enqueue(self, job: str, payload: dict[str, Any], delay_seconds: float, lane: str) -> None:
        name = job if "." in job else f"{self.task_prefix}{job}"
        self.app.send_task(name, kwargs=payload, countdown=max(0, delay_seconds), queue=lane)
        logger.debug(f"Scheduled {name} on {lane} in {delay_seconds}s")
