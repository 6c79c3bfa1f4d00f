"""
tetobot.services.economy — Service Wiring
==========================================

Builds every economy service from one :class:`Repositories` bundle and
one :class:`EconomyConfig`.  The store implementation (SQL or memory) is
chosen by whoever builds the bundle; the services never know which.
"""

from __future__ import annotations

from dataclasses import dataclass

from tetobot.config import EconomyConfig
from tetobot.database.repositories import Repositories
from tetobot.services.activity_service import ActivityService
from tetobot.services.bonus_intake import BonusIntake
from tetobot.services.credit_ledger import CreditLedger
from tetobot.services.daily_reset import DailyResetService
from tetobot.services.engagement import EngagementTracker
from tetobot.services.leaderboard import Leaderboard


@dataclass(frozen=True, slots=True)
class Economy:
    repos: Repositories
    config: EconomyConfig
    ledger: CreditLedger
    tracker: EngagementTracker
    daily_reset: DailyResetService
    bonus_intake: BonusIntake
    leaderboard: Leaderboard
    activity: ActivityService


def build_economy(repos: Repositories, config: EconomyConfig, **intake_kwargs) -> Economy:
    """Wire all services.  *intake_kwargs* go to :class:`BonusIntake`."""
    ledger = CreditLedger(repos.users, config)
    tracker = EngagementTracker(repos.user_guilds)
    return Economy(
        repos=repos,
        config=config,
        ledger=ledger,
        tracker=tracker,
        daily_reset=DailyResetService(repos.users, repos.user_guilds, ledger, tracker, config),
        bonus_intake=BonusIntake(ledger, config, **intake_kwargs),
        leaderboard=Leaderboard(repos.user_guilds),
        activity=ActivityService(repos.users, repos.guilds, ledger, tracker),
    )
