from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from fundflow.core.config import settings

celery_app = Celery(
    "fundflow",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "fundflow.tasks.outreach_stats",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,
    worker_prefetch_multiplier=1,
    task_queues=[
        Queue("default", routing_key="default"),
        Queue("stats", routing_key="stats"),
    ],
    beat_schedule={
        "refresh-active-outreach-stats": {
            "task": "fundflow.tasks.outreach_stats.refresh_active_outreach_stats",
            "schedule": crontab(minute="*/10"),
            "options": {"queue": "stats"},
        },
        "reconcile-outreach-recipients": {
            "task": "fundflow.tasks.outreach_stats.reconcile_outreach_recipients",
            "schedule": crontab(minute=15),
            "options": {"queue": "stats"},
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
