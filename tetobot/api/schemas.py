"""
tetobot.api.schemas — Request models and response serializers
===============================================================

Discord snowflakes exceed JavaScript's safe integer range, so every id
goes out as a string.  Counters stay numbers.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tetobot.database.models import MAX_SNOWFLAKE, User, UserGuild, UserRole


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class RecordUserMessageBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId", gt=0, le=MAX_SNOWFLAKE)
    # Missing guild id means the message is a DM.
    guild_id: int | None = Field(None, alias="guildId", gt=0, le=MAX_SNOWFLAKE)
    intimacy_increment: int = Field(1, alias="intimacyIncrement")


class EnsureUserGuildBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId", gt=0, le=MAX_SNOWFLAKE)
    guild_id: int = Field(alias="guildId", gt=0, le=MAX_SNOWFLAKE)
    role: UserRole = UserRole.USER


class AdminUserUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: UserRole | None = None
    message_credits: int | None = Field(None, alias="messageCredits", ge=0)


class UserGuildUpdate(BaseModel):
    """Bot-side changes to one relationship.

    ``fed`` stamps the feed cooldown with the current time; ``lastFeed``
    sets it explicitly.  The daily reset clears either.
    """

    model_config = ConfigDict(populate_by_name=True)

    intimacy_delta: int | None = Field(None, alias="intimacyDelta")
    fed: bool = False
    last_feed: datetime | None = Field(None, alias="lastFeed")

    def is_empty(self) -> bool:
        return self.intimacy_delta is None and not self.fed and self.last_feed is None


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def user_dict(u: User) -> dict:
    return {
        "userId": str(u.user_id),
        "role": str(u.role),
        "messageCredits": u.message_credits,
        "lastVotedAt": _iso(u.last_voted_at),
        "insertedAt": _iso(u.inserted_at),
        "updatedAt": _iso(u.updated_at),
    }


def user_guild_dict(ug: UserGuild) -> dict:
    return {
        "userId": str(ug.user_id),
        "guildId": str(ug.guild_id),
        "intimacy": ug.intimacy,
        "dailyMessageCount": ug.daily_message_count,
        "lastMessageAt": _iso(ug.last_message_at),
        "lastFeed": _iso(ug.last_feed),
        "insertedAt": _iso(ug.inserted_at),
        "updatedAt": _iso(ug.updated_at),
    }
