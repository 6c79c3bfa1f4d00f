"""
tetobot.tasks — Daily Reset Loop
=================================

Fires :meth:`DailyResetService.perform_daily_reset` once a day at a fixed
UTC time using a ``discord.ext.tasks`` loop.  The loop runs either inside
the API process (``scheduler.enabled: true`` in ``config.yaml``) or in
the standalone worker (``python -m tetobot.worker``).

The reset itself is synchronous database work, so it goes through
:func:`~tetobot.database.engine.run_db`.  If it fails with
:class:`~tetobot.errors.DailyResetError` (the selection queries could not
be read) the whole job is retried up to 3 times with exponential backoff
starting at 2 s.  Per-row failures never reach this level.
"""

from __future__ import annotations

import datetime
import logging

from discord.ext import tasks

from tetobot.config import SchedulerConfig
from tetobot.database.engine import run_db
from tetobot.errors import DailyResetError
from tetobot.services.daily_reset import DailyResetResult, DailyResetService
from tetobot.services.retry import call_with_retry

logger = logging.getLogger(__name__)

MIDNIGHT_UTC = datetime.time(hour=0, minute=0, tzinfo=datetime.UTC)

JOB_ATTEMPTS = 3
JOB_BASE_DELAY = 2.0   # seconds
JOB_MAX_DELAY = 30.0   # seconds


def reset_time(cfg: SchedulerConfig) -> datetime.time:
    return datetime.time(
        hour=cfg.reset_hour_utc, minute=cfg.reset_minute_utc, tzinfo=datetime.UTC
    )


class DailyResetScheduler:
    """Owns the ``discord.ext.tasks`` loop that triggers the daily reset."""

    def __init__(
        self,
        service: DailyResetService,
        at: datetime.time = MIDNIGHT_UTC,
        *,
        attempts: int = JOB_ATTEMPTS,
        base_delay: float = JOB_BASE_DELAY,
    ) -> None:
        self.service = service
        self.attempts = attempts
        self.base_delay = base_delay
        self.last_result: DailyResetResult | None = None
        self.daily_reset_loop.change_interval(time=at)

    def start(self) -> None:
        """Start the loop.  Must be called with a running event loop."""
        if not self.daily_reset_loop.is_running():
            self.daily_reset_loop.start()
            logger.info(
                "Daily reset loop scheduled at %s UTC",
                ", ".join(t.strftime("%H:%M") for t in self.daily_reset_loop.time),
            )

    def stop(self) -> None:
        self.daily_reset_loop.cancel()

    async def run_once(self) -> DailyResetResult:
        """Run one reset (with job-level retry) off the event loop."""
        result = await run_db(
            call_with_retry,
            self.service.perform_daily_reset,
            attempts=self.attempts,
            base_delay=self.base_delay,
            max_delay=JOB_MAX_DELAY,
            retry_on=(DailyResetError,),
            label="Daily reset",
        )
        self.last_result = result
        return result

    @tasks.loop(time=MIDNIGHT_UTC)
    async def daily_reset_loop(self):
        """Refill credits and reset daily counters."""
        try:
            result = await self.run_once()
            logger.info(
                "Daily reset task complete: %d users refilled, %d user guilds reset",
                result.credit_count, result.reset_count,
            )
        except Exception:
            logger.exception("Daily reset task failed", extra={"task": "daily_reset"})
