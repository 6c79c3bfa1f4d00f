"""
tetobot.services.daily_reset — Daily Credit Refill & Counter Reset
===================================================================

Best-effort batch maintenance, run once a day by :mod:`tetobot.tasks`
(or on demand from the admin API).

1. Every user whose ``message_credits`` is below the refill cap is topped
   up to exactly the cap.
2. Every relationship with ``daily_message_count > 0`` or a non-null
   ``last_feed`` has both cleared.  Untouched rows are never rewritten.

**One bad row never stops the batch.**  A per-row exception is logged and
counted as a failure; the loop moves on.  The job as a whole only fails
(:class:`~tetobot.errors.DailyResetError`) when a selection query cannot
be read at all.

Re-running is safe: a second run selects only the rows that still (or
newly) need work, which right after a successful run is none.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass

from tetobot.config import EconomyConfig
from tetobot.database.repositories import UserGuildRepository, UserRepository
from tetobot.errors import DailyResetError
from tetobot.services.credit_ledger import CreditLedger
from tetobot.services.engagement import EngagementTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DailyResetResult:
    """Aggregate outcome of one :meth:`DailyResetService.perform_daily_reset`."""

    credit_count: int
    reset_count: int
    duration_ms: int
    credit_failures: int = 0
    reset_failures: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class DailyResetService:
    """Refills credits and resets daily engagement counters."""

    def __init__(
        self,
        users: UserRepository,
        user_guilds: UserGuildRepository,
        ledger: CreditLedger,
        tracker: EngagementTracker,
        config: EconomyConfig,
    ) -> None:
        self.users = users
        self.user_guilds = user_guilds
        self.ledger = ledger
        self.tracker = tracker
        self.config = config

    # -------------------------------------------------------------------
    # Step 1: credits
    # -------------------------------------------------------------------
    def refill_all_credits(self) -> tuple[int, int]:
        """Return ``(refilled, failed)``."""
        cap = self.config.daily_credit_refill_cap
        logger.info("Daily reset: refilling message credits for users below %d", cap)

        try:
            candidates = self.users.find_below_credits(cap)
        except Exception as exc:
            raise DailyResetError(
                f"Failed to fetch users needing credit refill: {exc}"
            ) from exc

        logger.info("Found %d users needing credit refill", len(candidates))

        refilled = failed = 0
        for user in candidates:
            try:
                self.ledger.refill_if_below_cap(user.user_id, cap)
            except Exception:
                failed += 1
                logger.exception("Failed to refill credits for user %d", user.user_id)
            else:
                refilled += 1
        return refilled, failed

    # -------------------------------------------------------------------
    # Step 2: per-guild counters
    # -------------------------------------------------------------------
    def reset_all_daily_metrics(self) -> tuple[int, int]:
        """Return ``(reset, failed)``."""
        logger.info("Daily reset: resetting daily message counts and feed cooldowns")

        try:
            candidates = self.user_guilds.find_needing_reset()
        except Exception as exc:
            raise DailyResetError(
                f"Failed to fetch user guilds needing reset: {exc}"
            ) from exc

        logger.info("Found %d user guilds needing daily metrics reset", len(candidates))

        reset = failed = 0
        for row in candidates:
            try:
                self.tracker.reset_daily(row.user_id, row.guild_id)
            except Exception:
                failed += 1
                logger.exception(
                    "Failed to reset daily metrics for user %d in guild %d",
                    row.user_id, row.guild_id,
                )
            else:
                reset += 1
        return reset, failed

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------
    def perform_daily_reset(self) -> DailyResetResult:
        """Run both steps and return the aggregate counts.

        Raises
        ------
        DailyResetError
            If a selection query fails.  Per-row failures never raise.
        """
        logger.info("Daily reset: starting credit refill and metric reset")
        started = time.perf_counter()

        credit_count, credit_failures = self.refill_all_credits()
        reset_count, reset_failures = self.reset_all_daily_metrics()

        result = DailyResetResult(
            credit_count=credit_count,
            reset_count=reset_count,
            duration_ms=int((time.perf_counter() - started) * 1000),
            credit_failures=credit_failures,
            reset_failures=reset_failures,
        )
        logger.info(
            "Daily reset: refilled %d users and reset %d daily metrics in %dms "
            "(%d refill failures, %d reset failures)",
            result.credit_count, result.reset_count, result.duration_ms,
            result.credit_failures, result.reset_failures,
        )
        return result
