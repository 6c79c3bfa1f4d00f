"""
tetobot.api.routes.bot — Endpoints called by the Discord bot
==============================================================

All routes require ``Authorization: Bearer <BOT_API_KEY>``.

``/user-guilds`` reads and edits single relationships: intimacy
adjustments and the feed cooldown the daily reset clears.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from tetobot.api.deps import EconomyDep, require_bot_key
from tetobot.api.schemas import (
    EnsureUserGuildBody,
    RecordUserMessageBody,
    UserGuildUpdate,
    user_dict,
    user_guild_dict,
)
from tetobot.database.models import MAX_SNOWFLAKE
from tetobot.errors import InsufficientCredits, RelationshipNotFound, StoreError
from tetobot.services.leaderboard import DEFAULT_LIMIT, MAX_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bot"], dependencies=[Depends(require_bot_key)])


# ---------------------------------------------------------------------------
# POST /record-user-message
# ---------------------------------------------------------------------------
@router.post("/record-user-message")
def record_user_message(body: RecordUserMessageBody, economy: EconomyDep):
    """Charge one message and count it towards the guild relationship."""
    try:
        outcome = economy.activity.record_user_message(
            body.user_id, body.guild_id, body.intimacy_increment
        )
    except InsufficientCredits as exc:
        raise HTTPException(status.HTTP_402_PAYMENT_REQUIRED, str(exc))
    except StoreError:
        logger.exception("record_user_message failed for user %d", body.user_id)
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to record user message"
        )

    data = {"user": user_dict(outcome.user)}
    if outcome.user_guild is not None:
        data["userGuild"] = user_guild_dict(outcome.user_guild)
    return {"data": data}


# ---------------------------------------------------------------------------
# POST /ensure-user-guild-exists
# ---------------------------------------------------------------------------
@router.post("/ensure-user-guild-exists")
def ensure_user_guild_exists(body: EnsureUserGuildBody, economy: EconomyDep):
    try:
        outcome = economy.activity.ensure_user_guild_exists(
            body.user_id, body.guild_id, body.role
        )
    except StoreError:
        logger.exception(
            "ensure_user_guild_exists failed for %d:%d", body.user_id, body.guild_id
        )
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to ensure user-guild relationship exists",
        )
    return {
        "data": {
            "user": user_dict(outcome.user),
            "userGuild": user_guild_dict(outcome.user_guild),
        }
    }


# ---------------------------------------------------------------------------
# GET /leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(
    economy: EconomyDep,
    guild_id: int = Query(..., alias="guildId", gt=0, le=MAX_SNOWFLAKE),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
):
    """Top relationships of a guild by intimacy."""
    rows = economy.leaderboard.top_by_intimacy(guild_id, limit)
    return {"data": {"leaderboard": [user_guild_dict(r) for r in rows]}}


# ---------------------------------------------------------------------------
# GET /users/{user_id}
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}")
def get_user(economy: EconomyDep, user_id: int = Path(gt=0, le=MAX_SNOWFLAKE)):
    user = economy.repos.users.find_by_id(user_id)
    if user is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")
    return {"data": {"user": user_dict(user)}}


# ---------------------------------------------------------------------------
# GET / PATCH /user-guilds
# ---------------------------------------------------------------------------
@router.get("/user-guilds")
def get_user_guilds(
    economy: EconomyDep,
    user_id: int | None = Query(None, alias="userId", gt=0, le=MAX_SNOWFLAKE),
    guild_id: int | None = Query(None, alias="guildId", gt=0, le=MAX_SNOWFLAKE),
):
    """One relationship when both ids are given, every relationship when neither is."""
    if user_id is None and guild_id is None:
        rows = economy.repos.user_guilds.find_all()
        return {"data": {"userGuilds": [user_guild_dict(r) for r in rows]}}
    if user_id is None or guild_id is None:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, "userId and guildId must be given together"
        )

    row = economy.tracker.get(user_id, guild_id)
    if row is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User guild not found")
    return {"data": {"userGuild": user_guild_dict(row)}}


@router.patch("/user-guilds")
def update_user_guild(
    body: UserGuildUpdate,
    economy: EconomyDep,
    user_id: int = Query(..., alias="userId", gt=0, le=MAX_SNOWFLAKE),
    guild_id: int = Query(..., alias="guildId", gt=0, le=MAX_SNOWFLAKE),
):
    if body.is_empty():
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Nothing to update")

    tracker = economy.tracker
    row = tracker.get(user_id, guild_id)
    if row is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User guild not found")
    try:
        # The row can still vanish (admin delete) between the read and the writes.
        if body.intimacy_delta is not None:
            row = tracker.adjust_intimacy(user_id, guild_id, body.intimacy_delta)
        if body.fed or body.last_feed is not None:
            row = tracker.mark_fed(user_id, guild_id, body.last_feed)
    except RelationshipNotFound:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User guild not found")
    except StoreError:
        logger.exception("update_user_guild failed for %d:%d", user_id, guild_id)
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to update user guild"
        )
    return {"data": {"userGuild": user_guild_dict(row)}}
