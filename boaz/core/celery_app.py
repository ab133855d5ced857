from celery import Celery

from boaz.core.config import get_settings
from boaz.jobs import REPORTING_SNAPSHOTS, SCHEDULER_REMINDERS, SESSION_CLEANUP, job_runner

settings = get_settings()

celery_app = Celery("boaz_api", broker=settings.redis_url, backend=settings.redis_url)
celery_app.conf.beat_schedule = {
    "reporting-snapshots": {
        "task": "boaz.tasks.reporting_snapshots",
        "schedule": float(settings.reporting_snapshot_interval_seconds),
    },
    "scheduler-reminders": {
        "task": "boaz.tasks.scheduler_reminders",
        "schedule": float(settings.scheduler_reminders_interval_seconds),
    },
    "session-cleanup": {
        "task": "boaz.tasks.session_cleanup",
        "schedule": 24 * 60 * 60.0,
    },
}


@celery_app.task(name="boaz.tasks.reporting_snapshots")
def reporting_snapshots_task() -> int:
    return job_runner.run(REPORTING_SNAPSHOTS)


@celery_app.task(name="boaz.tasks.scheduler_reminders")
def scheduler_reminders_task() -> int:
    return job_runner.run(SCHEDULER_REMINDERS)


@celery_app.task(name="boaz.tasks.session_cleanup")
def session_cleanup_task() -> int:
    return job_runner.run(SESSION_CLEANUP)
