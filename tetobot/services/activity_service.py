"""
tetobot.services.activity_service — Message & Membership Flows
================================================================

The two flows the bot calls on every interaction:

- :meth:`ActivityService.record_user_message` — ensure the user (and
  guild) exist, charge the message cost, then count the message on the
  user-guild relationship.  The charge happens **first**: if the user
  cannot pay, :class:`~tetobot.errors.InsufficientCredits` propagates and
  no counter is touched.  A message without a guild is a DM and only
  costs credits.
- :meth:`ActivityService.ensure_user_guild_exists` — get-or-create all
  three rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tetobot.database.models import Guild, User, UserGuild, UserRole
from tetobot.database.repositories import GuildRepository, UserRepository
from tetobot.errors import UniqueConstraintViolation
from tetobot.services.credit_ledger import CreditLedger
from tetobot.services.engagement import EngagementTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActivityOutcome:
    user: User
    user_guild: UserGuild | None = None


def get_or_create_user(
    users: UserRepository, user_id: int, role: UserRole = UserRole.USER
) -> User:
    """Fetch or insert a User row.  A lost create race reads the winner."""
    user = users.find_by_id(user_id)
    if user is not None:
        return user
    try:
        user = users.create(user_id, role=role)
        logger.info("Created user %d", user_id)
        return user
    except UniqueConstraintViolation:
        return users.find_by_id(user_id)


def get_or_create_guild(guilds: GuildRepository, guild_id: int) -> Guild:
    """Fetch or insert a Guild row.  A lost create race reads the winner."""
    guild = guilds.find_by_id(guild_id)
    if guild is not None:
        return guild
    try:
        guild = guilds.create(guild_id)
        logger.info("Created guild %d", guild_id)
        return guild
    except UniqueConstraintViolation:
        return guilds.find_by_id(guild_id)


class ActivityService:
    def __init__(
        self,
        users: UserRepository,
        guilds: GuildRepository,
        ledger: CreditLedger,
        tracker: EngagementTracker,
    ) -> None:
        self.users = users
        self.guilds = guilds
        self.ledger = ledger
        self.tracker = tracker

    def record_user_message(
        self,
        user_id: int,
        guild_id: int | None = None,
        intimacy_increment: int = 1,
    ) -> ActivityOutcome:
        get_or_create_user(self.users, user_id)
        if guild_id is not None:
            get_or_create_guild(self.guilds, guild_id)

        user = self.ledger.deduct(user_id)

        if guild_id is None:
            return ActivityOutcome(user=user)

        self.tracker.get_or_create(user_id, guild_id)
        user_guild = self.tracker.record_message(user_id, guild_id, intimacy_increment)
        return ActivityOutcome(user=user, user_guild=user_guild)

    def ensure_user_guild_exists(
        self, user_id: int, guild_id: int, role: UserRole = UserRole.USER
    ) -> ActivityOutcome:
        user = get_or_create_user(self.users, user_id, role)
        get_or_create_guild(self.guilds, guild_id)
        user_guild = self.tracker.get_or_create(user_id, guild_id)
        return ActivityOutcome(user=user, user_guild=user_guild)
