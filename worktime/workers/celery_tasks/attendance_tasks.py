"""
Attendance recovery tasks, scheduled by Celery beat
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from worktime.core.celery_app import celery_app
from worktime.models.shared.enums import SweepJob
from worktime.workers.scheduler import recovery_scheduler, worker_engine

logger = logging.getLogger(__name__)

def run_async_task(coro):
    """Helper function to run async coroutines in Celery tasks"""
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        return loop.run_until_complete(coro)
    except Exception as e:
        logger.error(f"Error in async task: {e}")
        raise
    finally:
        loop.run_until_complete(worker_engine.dispose())
        loop.close()

def _parse_run_date(run_date: Optional[str]):
    return datetime.strptime(run_date, '%Y-%m-%d').date() if run_date else None

@celery_app.task(name="worktime.workers.celery_tasks.attendance_tasks.run_absence_sweep")
def run_absence_sweep(run_date: str = None):
    """Daily task marking users without any time recorded as absent"""
    result = run_async_task(recovery_scheduler.run(SweepJob.ABSENCE, _parse_run_date(run_date)))
    return result.model_dump(mode="json")

@celery_app.task(name="worktime.workers.celery_tasks.attendance_tasks.run_stuck_session_sweep")
def run_stuck_session_sweep(run_date: str = None):
    """End-of-day task closing sessions nobody clocked out of"""
    result = run_async_task(recovery_scheduler.run(SweepJob.STUCK_SESSIONS, _parse_run_date(run_date)))
    return result.model_dump(mode="json")
