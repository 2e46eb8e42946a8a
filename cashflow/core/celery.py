"""
Celery configuration for background tasks
"""
from celery import Celery
import logging

from cashflow.core.config import settings

logger = logging.getLogger(__name__)

# Create Celery instance
celery_app = Celery(
    "cashflow",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "cashflow.modules.expenses.tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="America/Bogota",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Result backend settings
    result_expires=3600,  # 1 hour

    task_routes={
        "cashflow.modules.expenses.tasks.*": {"queue": "accruals"},
    },

    # Beat schedule for periodic tasks
    beat_schedule={
        "sync-recurring-expenses": {
            "task": "cashflow.modules.expenses.tasks.sync_recurring_expenses",
            "schedule": settings.ACCRUAL_SYNC_INTERVAL_SECONDS,
        },
    }
)

if __name__ == "__main__":
    celery_app.start()
