"""
Owner of the periodic recovery jobs.

One RecoveryScheduler is built per worker process. It holds both jobs, their crontab
schedules and the Redis lock that keeps two workers from running the same job at once.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable, Dict, Optional

from celery.schedules import crontab
from redis.exceptions import LockError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from worktime.core.config import settings
from worktime.core.redis import RedisClient
from worktime.models.shared.enums import SweepJob
from worktime.schemas.hr.sweep_schema import SweepResult
from worktime.services.hr.recovery_service import RecoveryService
from worktime.utils.date_time import local_date

logger = logging.getLogger(__name__)

TASK_NAMES = {
    SweepJob.ABSENCE: "worktime.workers.celery_tasks.attendance_tasks.run_absence_sweep",
    SweepJob.STUCK_SESSIONS: "worktime.workers.celery_tasks.attendance_tasks.run_stuck_session_sweep",
}


@dataclass(frozen=True)
class ScheduledJob:
    job: SweepJob
    hour: int
    minute: int
    run: Callable[[Optional[date]], Awaitable[SweepResult]]

    @property
    def schedule(self) -> crontab:
        return crontab(hour=self.hour, minute=self.minute)


class RecoveryScheduler:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        recovery: Optional[RecoveryService] = None,
        use_job_lock: bool = True,
    ):
        self.recovery = recovery or RecoveryService(session_factory)
        self.use_job_lock = use_job_lock
        self.jobs: Dict[SweepJob, ScheduledJob] = {
            SweepJob.ABSENCE: ScheduledJob(
                SweepJob.ABSENCE,
                settings.ABSENCE_SWEEP_HOUR,
                settings.ABSENCE_SWEEP_MINUTE,
                self.recovery.run_absence_sweep,
            ),
            SweepJob.STUCK_SESSIONS: ScheduledJob(
                SweepJob.STUCK_SESSIONS,
                settings.STUCK_SESSION_SWEEP_HOUR,
                settings.STUCK_SESSION_SWEEP_MINUTE,
                self.recovery.run_stuck_session_sweep,
            ),
        }

    def beat_schedule(self) -> Dict[str, dict]:
        """Celery beat entries, in the organisation time zone"""
        return {
            f"worktime-{scheduled.job.value}": {
                "task": TASK_NAMES[scheduled.job],
                "schedule": scheduled.schedule,
            }
            for scheduled in self.jobs.values()
        }

    async def run(self, job: SweepJob, run_date: Optional[date] = None) -> SweepResult:
        scheduled = self.jobs[SweepJob(job)]
        if not self.use_job_lock:
            return await scheduled.run(run_date)

        client = RedisClient()
        try:
            lock = await client.lock(
                f"worktime:sweep:{scheduled.job.value}",
                timeout=self.recovery.time_budget_seconds + 60,
            )
            if not await lock.acquire(blocking=False):
                logger.warning(f"⏭️ {scheduled.job.value} already running elsewhere, skipping")
                return SweepResult(
                    job=scheduled.job,
                    run_date=run_date or local_date(self.recovery.clock()),
                    message="Skipped: another run holds the job lock",
                )
            try:
                return await scheduled.run(run_date)
            finally:
                try:
                    await lock.release()
                except LockError:
                    logger.warning(f"Job lock for {scheduled.job.value} expired before release")
        finally:
            await client.disconnect()


# Connections must not outlive the event loop of a single task run
worker_engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool, future=True)

worker_session_maker = async_sessionmaker(
    bind=worker_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

recovery_scheduler = RecoveryScheduler(worker_session_maker)
