"""APScheduler-based maintenance jobs.

Uses APScheduler 3.x with AsyncIOScheduler. Two jobs keep the challenge
table small:

- ``challenges:expired_sweep`` every CHALLENGE_SWEEP_INTERVAL_MINUTES
- ``challenges:consumed_sweep`` nightly, removing used challenges older
  than CONSUMED_CHALLENGE_RETENTION_HOURS

Both only delete rows that can no longer complete a ceremony.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from passgate.settings import Settings, get_settings

logger = logging.getLogger(__name__)

EXPIRED_SWEEP_JOB_ID = "challenges:expired_sweep"
CONSUMED_SWEEP_JOB_ID = "challenges:consumed_sweep"


class SchedulerService:
    """Runs the challenge sweeps inside the API process.

    Lifecycle:
        scheduler = SchedulerService()
        await scheduler.start()    # Called in lifespan startup
        ...
        await scheduler.stop()     # Called in lifespan shutdown
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._scheduler = AsyncIOScheduler(timezone=self._settings.scheduler_timezone)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Register the sweep jobs and start the scheduler."""
        if not self._settings.scheduler_enabled:
            logger.info("Scheduler disabled via settings")
            return

        self._schedule_expired_sweep()
        self._schedule_consumed_sweep()
        self._scheduler.start()
        self._running = True
        logger.info("Scheduler started")

    async def stop(self) -> None:
        """Gracefully shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    def _schedule_expired_sweep(self) -> None:
        interval = self._settings.challenge_sweep_interval_minutes
        self._scheduler.add_job(
            sweep_expired_challenges,
            trigger=IntervalTrigger(minutes=interval),
            id=EXPIRED_SWEEP_JOB_ID,
            replace_existing=True,
            name="challenges:delete_expired",
            misfire_grace_time=300,
        )
        logger.info("Expired challenge sweep scheduled every %d minutes", interval)

    def _schedule_consumed_sweep(self) -> None:
        retention = self._settings.consumed_challenge_retention_hours
        self._scheduler.add_job(
            sweep_consumed_challenges,
            trigger=CronTrigger(hour=3, minute=30, timezone=self._settings.scheduler_timezone),
            id=CONSUMED_SWEEP_JOB_ID,
            replace_existing=True,
            name="challenges:delete_consumed",
            kwargs={"older_than_hours": retention},
            misfire_grace_time=600,
        )
        logger.info("Nightly consumed challenge sweep scheduled at 03:30 (retention %dh)", retention)


async def sweep_expired_challenges() -> int:
    """Job: delete expired challenges. Returns rows removed."""
    from passgate.storage import get_committing_session
    from passgate.webauthn.challenges import ChallengeManager
    from passgate.webauthn.config import WebAuthnConfig

    config = WebAuthnConfig.from_settings(get_settings())
    async with get_committing_session() as session:
        return await ChallengeManager(session, config).sweep_expired()


async def sweep_consumed_challenges(older_than_hours: int | None = None) -> int:
    """Job: delete used challenges older than the retention window."""
    from passgate.storage import get_committing_session
    from passgate.webauthn.challenges import ChallengeManager
    from passgate.webauthn.config import WebAuthnConfig

    settings = get_settings()
    hours = (
        older_than_hours
        if older_than_hours is not None
        else settings.consumed_challenge_retention_hours
    )
    config = WebAuthnConfig.from_settings(settings)
    async with get_committing_session() as session:
        return await ChallengeManager(session, config).sweep_consumed(hours)
