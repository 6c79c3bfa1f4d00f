"""
tetobot.services.engagement — Per-Guild Intimacy & Daily Counters
==================================================================

Owns the ``user_guilds`` relationship: created lazily on the first
interaction, bumped on every recorded message, zeroed by the daily reset.

Invariants:
- ``intimacy`` never drops below 0 (adjustments are floored, not rejected).
- ``daily_message_count`` only counts today's messages; the daily reset
  zeroes it together with the ``last_feed`` cooldown marker.
"""

from __future__ import annotations

import logging
from datetime import datetime

from tetobot.database.models import UserGuild
from tetobot.database.repositories import UserGuildRepository, utcnow
from tetobot.errors import RelationshipNotFound, UniqueConstraintViolation
from tetobot.services.retry import retry_on_conflict

logger = logging.getLogger(__name__)


class EngagementTracker:
    """Relationship lifecycle and intimacy scoring for (user, guild) pairs."""

    def __init__(self, user_guilds: UserGuildRepository) -> None:
        self.user_guilds = user_guilds

    def get(self, user_id: int, guild_id: int) -> UserGuild | None:
        return self.user_guilds.find_by_composite_key(user_id, guild_id)

    def _require(self, user_id: int, guild_id: int) -> UserGuild:
        row = self.user_guilds.find_by_composite_key(user_id, guild_id)
        if row is None:
            raise RelationshipNotFound(user_id, guild_id)
        return row

    def get_or_create(self, user_id: int, guild_id: int) -> UserGuild:
        """Return the relationship, creating a zeroed one on first access.

        Two concurrent callers may both miss and both insert.  The loser
        hits the unique key and simply reads the winner's row.
        """
        existing = self.user_guilds.find_by_composite_key(user_id, guild_id)
        if existing is not None:
            return existing
        try:
            row = self.user_guilds.create(user_id, guild_id)
            logger.info("Created user guild %d:%d", user_id, guild_id)
            return row
        except UniqueConstraintViolation:
            return self._require(user_id, guild_id)

    def record_message(
        self,
        user_id: int,
        guild_id: int,
        intimacy_increment: int = 1,
        at: datetime | None = None,
    ) -> UserGuild:
        """Count one message: +1 today, +*intimacy_increment* intimacy."""
        at = at or utcnow()

        def attempt() -> UserGuild:
            row = self._require(user_id, guild_id)
            return self.user_guilds.update(
                user_id,
                guild_id,
                {
                    "daily_message_count": row.daily_message_count + 1,
                    "intimacy": max(0, row.intimacy + intimacy_increment),
                    "last_message_at": at,
                },
                expected_version=row.version,
            )

        return retry_on_conflict(attempt)

    def adjust_intimacy(self, user_id: int, guild_id: int, delta: int) -> UserGuild:
        """Apply *delta*, flooring the result at 0."""

        def attempt() -> UserGuild:
            row = self._require(user_id, guild_id)
            return self.user_guilds.update(
                user_id,
                guild_id,
                {"intimacy": max(0, row.intimacy + delta)},
                expected_version=row.version,
            )

        return retry_on_conflict(attempt)

    def mark_fed(self, user_id: int, guild_id: int, at: datetime | None = None) -> UserGuild:
        """Stamp the ``last_feed`` cooldown marker (cleared by the daily reset)."""
        return self.user_guilds.update(user_id, guild_id, {"last_feed": at or utcnow()})

    def reset_daily(self, user_id: int, guild_id: int) -> UserGuild:
        """Zero today's counter and clear the feed cooldown.  Idempotent."""
        row = self._require(user_id, guild_id)
        if row.daily_message_count == 0 and row.last_feed is None:
            return row
        return self.user_guilds.update(
            user_id, guild_id, {"daily_message_count": 0, "last_feed": None}
        )
