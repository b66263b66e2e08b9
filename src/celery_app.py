"""Celery application configuration."""

from celery import Celery

from src.config import get_settings

settings = get_settings()

app = Celery(
    "reminder_delivery",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["src.tasks.reminders"],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes max per task
    task_soft_time_limit=240,  # 4 minutes soft limit
)

app.conf.beat_schedule = {
    "sweep-due-reminders": {
        "task": "src.tasks.reminders.sweep_due_reminders",
        "schedule": float(settings.sweep_interval_seconds),
        # A late beat tick is useless once the next one is due
        "options": {"expires": float(settings.sweep_interval_seconds)},
    },
}
