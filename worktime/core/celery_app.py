from celery import Celery
from celery.signals import setup_logging
from worktime.core.logging_config import setup_logging as configure_logging
from worktime.core.config import settings
from worktime.workers.scheduler import recovery_scheduler
import sys

# Create Celery app
celery_app = Celery(
    "worktime",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "worktime.workers.celery_tasks.attendance_tasks",
    ]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # crontab hours are read in the organisation time zone
    timezone=settings.TIMEZONE,
    enable_utc=True,
    result_expires=3600,
)

# Windows-specific configuration
if sys.platform == 'win32':
    celery_app.conf.update(
        worker_pool='threads',
        worker_concurrency=4
    )

celery_app.conf.beat_schedule = recovery_scheduler.beat_schedule()

@setup_logging.connect
def configure_worker_logging(**kwargs):
    """Use the application log files instead of Celery's own handlers"""
    configure_logging()
