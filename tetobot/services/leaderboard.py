"""
tetobot.services.leaderboard — Intimacy Ranking
================================================

Read-only view over ``user_guilds``: the closest users of one guild,
highest intimacy first.  Equal intimacy is ordered by ``user_id`` so the
same data always renders the same ranking.
"""

from __future__ import annotations

from tetobot.database.models import UserGuild
from tetobot.database.repositories import UserGuildRepository

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


class Leaderboard:
    def __init__(self, user_guilds: UserGuildRepository) -> None:
        self.user_guilds = user_guilds

    def top_by_intimacy(self, guild_id: int, limit: int = DEFAULT_LIMIT) -> list[UserGuild]:
        """Return at most *limit* relationships of *guild_id*.

        Raises
        ------
        ValueError
            If *limit* is outside ``1..100``.
        """
        if not 1 <= limit <= MAX_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_LIMIT}")
        return self.user_guilds.find_top_by_intimacy(guild_id, limit)
