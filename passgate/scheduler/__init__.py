"""Scheduler package for periodic maintenance jobs."""

from passgate.scheduler.service import (
    SchedulerService,
    sweep_consumed_challenges,
    sweep_expired_challenges,
)

__all__ = ["SchedulerService", "sweep_consumed_challenges", "sweep_expired_challenges"]
