"""
tetobot.services.credit_ledger — Message-Credit Bookkeeping
============================================================

Owns ``users.message_credits``.  The balance is a strictly non-negative
counter: a deduction that would push it below zero is rejected with
:class:`~tetobot.errors.InsufficientCredits` before anything is written.
It is never clamped.

Every operation is a read followed by a compare-and-swap on the row's
``version``.  If another request changed the row in between, the
operation re-reads and tries again (see
:func:`~tetobot.services.retry.retry_on_conflict`), so two concurrent
deductions can never both spend the same credit.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime

from tetobot.config import EconomyConfig
from tetobot.database.models import User
from tetobot.database.repositories import UserRepository, utcnow
from tetobot.errors import InsufficientCredits, UserNotFound
from tetobot.services.retry import retry_on_conflict

logger = logging.getLogger(__name__)


class BonusKind(enum.StrEnum):
    VOTE = "vote"
    PURCHASE = "purchase"


class CreditLedger:
    """Deduct, award and refill message credits."""

    def __init__(self, users: UserRepository, config: EconomyConfig) -> None:
        self.users = users
        self.config = config

    def _require(self, user_id: int) -> User:
        user = self.users.find_by_id(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def get_balance(self, user_id: int) -> int:
        return self._require(user_id).message_credits

    # -------------------------------------------------------------------
    # Deduction
    # -------------------------------------------------------------------
    def deduct(self, user_id: int, cost: int | None = None) -> User:
        """Spend *cost* credits (default: the configured message cost).

        Raises
        ------
        InsufficientCredits
            If the balance is below *cost*.  Nothing is written.
        UserNotFound
            If the user does not exist.
        """
        if cost is None:
            cost = self.config.message_credit_cost
        if cost < 0:
            raise ValueError("cost must be >= 0")

        def attempt() -> User:
            user = self._require(user_id)
            if user.message_credits < cost:
                raise InsufficientCredits(user_id, user.message_credits, cost)
            return self.users.update(
                user_id,
                {"message_credits": user.message_credits - cost},
                expected_version=user.version,
            )

        updated = retry_on_conflict(attempt)
        logger.debug(
            "Deducted %d credit(s) from user %d → %d left",
            cost, user_id, updated.message_credits,
        )
        return updated

    # -------------------------------------------------------------------
    # Bonuses
    # -------------------------------------------------------------------
    def award_bonus(
        self,
        user_id: int,
        amount: int,
        kind: BonusKind,
        *,
        at: datetime | None = None,
    ) -> User:
        """Add *amount* credits.  A vote bonus also stamps ``last_voted_at``.

        Never creates the user: a vote or purchase for an unknown id is
        reported as :class:`UserNotFound`.
        """
        if amount < 0:
            raise ValueError("amount must be >= 0")
        kind = BonusKind(kind)

        def attempt() -> User:
            user = self._require(user_id)
            values: dict = {"message_credits": user.message_credits + amount}
            if kind is BonusKind.VOTE:
                values["last_voted_at"] = at or utcnow()
            return self.users.update(user_id, values, expected_version=user.version)

        updated = retry_on_conflict(attempt)
        logger.info(
            "Awarded %s bonus of %d credit(s) to user %d (balance %d)",
            kind.value, amount, user_id, updated.message_credits,
        )
        return updated

    # -------------------------------------------------------------------
    # Refill (daily reset only)
    # -------------------------------------------------------------------
    def refill_if_below_cap(self, user_id: int, cap: int | None = None) -> User:
        """Top the balance up to exactly *cap*.  Never lowers it."""
        if cap is None:
            cap = self.config.daily_credit_refill_cap

        def attempt() -> User:
            user = self._require(user_id)
            if user.message_credits >= cap:
                return user
            return self.users.update(
                user_id, {"message_credits": cap}, expected_version=user.version
            )

        return retry_on_conflict(attempt)
