"""
tetobot.services.bonus_intake — Vote & Purchase Webhook Consumer
=================================================================

Turns external reward events into :class:`~tetobot.services.credit_ledger.CreditLedger`
bonuses.  Delivery is at-least-once and senders are unreliable, so:

- The body is validated first (pydantic).  A malformed body, a
  non-numeric or out-of-range user id or an unknown product is
  :class:`~tetobot.errors.InvalidPayload` and is never retried.
- Test events (``type == "test"`` votes, any purchase event other than
  ``order.paid``) are acknowledged without touching the ledger.
- The ledger write alone is wrapped in :func:`call_with_retry`
  (3 attempts, exponential backoff + jitter) to absorb transient store
  errors.

Authentication of the request is the transport's job
(:mod:`tetobot.api.routes.webhooks`).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tetobot.config import EconomyConfig
from tetobot.database.models import MAX_SNOWFLAKE, User
from tetobot.errors import InvalidPayload
from tetobot.services.credit_ledger import BonusKind, CreditLedger
from tetobot.services.retry import DEFAULT_ATTEMPTS, DEFAULT_BASE_DELAY, call_with_retry

logger = logging.getLogger(__name__)

ORDER_PAID = "order.paid"


# ---------------------------------------------------------------------------
# Payload schemas
# ---------------------------------------------------------------------------
class VotePayload(BaseModel):
    """top.gg vote webhook body."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    user: str
    type: Literal["upvote", "test"]
    bot: str | None = None
    guild: str | None = None
    is_weekend: bool = Field(False, alias="isWeekend")
    query: dict[str, str] | str | None = None


class PurchaseCustomer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    external_id: str | None = None


class PurchaseOrder(BaseModel):
    """The ``data`` object of a Polar ``order.paid`` event."""

    model_config = ConfigDict(extra="ignore")

    product_id: str
    customer: PurchaseCustomer | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def discord_user_id(self) -> str | None:
        if self.customer is not None and self.customer.external_id:
            return self.customer.external_id
        value = self.metadata.get("discord_user_id")
        return str(value) if value is not None else None


class PurchaseEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    data: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class IntakeResult:
    """What the intake did with one event."""

    kind: BonusKind
    awarded: bool
    user_id: int | None = None
    amount: int = 0
    user: User | None = None


def parse_user_id(raw: str | None) -> int:
    """Parse a Discord snowflake, raising :class:`InvalidPayload` if it isn't one."""
    text = "" if raw is None else str(raw).strip()
    # isdigit() alone also accepts non-ASCII digits such as "²".
    if not (text.isascii() and text.isdigit()):
        raise InvalidPayload(f"Invalid user id: {raw!r}")
    user_id = int(text)
    if not 0 < user_id <= MAX_SNOWFLAKE:
        raise InvalidPayload(f"Invalid user id: {raw!r}")
    return user_id


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class BonusIntake:
    """Validates reward events and applies them with bounded retry."""

    def __init__(
        self,
        ledger: CreditLedger,
        config: EconomyConfig,
        *,
        attempts: int = DEFAULT_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.ledger = ledger
        self.config = config
        self.attempts = attempts
        self.base_delay = base_delay
        self.sleep = sleep

    def _award(self, user_id: int, amount: int, kind: BonusKind) -> User:
        return call_with_retry(
            lambda: self.ledger.award_bonus(user_id, amount, kind),
            attempts=self.attempts,
            base_delay=self.base_delay,
            sleep=self.sleep,
            label=f"{kind.value} bonus for user {user_id}",
        )

    def handle_vote(
        self, payload: Mapping[str, Any], bonus_amount: int | None = None
    ) -> IntakeResult:
        """Consume one vote event.

        Raises
        ------
        InvalidPayload
            Malformed body or user id.
        UserNotFound
            The voter has never interacted with the bot.
        StoreError
            The store kept failing after all retries.
        """
        try:
            vote = VotePayload.model_validate(payload)
        except ValidationError as exc:
            raise InvalidPayload(f"Invalid vote payload: {exc}") from exc

        user_id = parse_user_id(vote.user)

        if vote.type == "test":
            logger.info("Received a test vote from user: %d", user_id)
            return IntakeResult(kind=BonusKind.VOTE, awarded=False, user_id=user_id)

        amount = self.config.vote_credit_bonus if bonus_amount is None else bonus_amount
        user = self._award(user_id, amount, BonusKind.VOTE)
        return IntakeResult(
            kind=BonusKind.VOTE, awarded=True, user_id=user_id, amount=amount, user=user
        )

    def handle_purchase(self, payload: Mapping[str, Any]) -> IntakeResult:
        """Consume one purchase event (Polar ``order.*`` webhook).

        Same failure modes as :meth:`handle_vote`; an unmapped product id
        is also :class:`InvalidPayload`.
        """
        try:
            event = PurchaseEvent.model_validate(payload)
        except ValidationError as exc:
            raise InvalidPayload(f"Invalid purchase payload: {exc}") from exc

        if event.type != ORDER_PAID:
            logger.info("Ignoring purchase webhook type: %s", event.type)
            return IntakeResult(kind=BonusKind.PURCHASE, awarded=False)

        try:
            order = PurchaseOrder.model_validate(event.data)
        except ValidationError as exc:
            raise InvalidPayload(f"Invalid order data: {exc}") from exc

        user_id = parse_user_id(order.discord_user_id())
        amount = self.config.credits_for_product(order.product_id)
        if amount is None:
            raise InvalidPayload(f"Unknown product id: {order.product_id}")

        user = self._award(user_id, amount, BonusKind.PURCHASE)
        return IntakeResult(
            kind=BonusKind.PURCHASE, awarded=True, user_id=user_id, amount=amount, user=user
        )
