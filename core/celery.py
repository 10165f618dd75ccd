from celery import Celery

from core.config import settings

broker_url = settings.REDIS_URL
backend_url = settings.REDIS_URL

celery_app = Celery(
    "payment_reconciliation",
    broker=broker_url,
    backend=backend_url,
    include=["tasks.notification_tasks", "tasks.reconciliation_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    task_always_eager=False,
    task_eager_propagates=False,
    beat_schedule={
        "auto-verify-bank-transfers": {
            "task": "tasks.reconciliation_tasks.auto_verify_payments",
            "schedule": settings.RECONCILIATION_INTERVAL_MINUTES * 60.0,
        },
    },
)
