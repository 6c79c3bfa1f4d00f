"""
tests/test_activity_service.py — Message & Membership Flows
============================================================
"""

from __future__ import annotations

import pytest

from tetobot.database.models import UserRole
from tetobot.errors import InsufficientCredits


class TestRecordUserMessage:
    def test_first_message_creates_everything(self, economy):
        outcome = economy.activity.record_user_message(1, 10)
        assert outcome.user.message_credits == 29
        assert outcome.user_guild.intimacy == 1
        assert outcome.user_guild.daily_message_count == 1
        assert economy.repos.guilds.find_by_id(10) is not None

    def test_dm_only_costs_credits(self, economy):
        outcome = economy.activity.record_user_message(1)
        assert outcome.user.message_credits == 29
        assert outcome.user_guild is None
        assert economy.repos.user_guilds.find_all() == []

    def test_custom_intimacy_increment(self, economy):
        outcome = economy.activity.record_user_message(1, 10, intimacy_increment=5)
        assert outcome.user_guild.intimacy == 5

    def test_broke_user_is_refused_and_nothing_is_counted(self, economy):
        economy.repos.users.create(1, message_credits=0)
        economy.repos.guilds.create(10)
        economy.repos.user_guilds.create(1, 10)

        with pytest.raises(InsufficientCredits):
            economy.activity.record_user_message(1, 10)

        row = economy.repos.user_guilds.find_by_composite_key(1, 10)
        assert row.daily_message_count == 0
        assert row.intimacy == 0


class TestEnsureUserGuildExists:
    def test_creates_all_three_rows(self, economy):
        outcome = economy.activity.ensure_user_guild_exists(1, 10, UserRole.ADMIN)
        assert outcome.user.role == UserRole.ADMIN
        assert outcome.user.message_credits == 30
        assert outcome.user_guild.intimacy == 0

    def test_idempotent(self, economy):
        economy.activity.ensure_user_guild_exists(1, 10)
        economy.activity.record_user_message(1, 10)
        outcome = economy.activity.ensure_user_guild_exists(1, 10)
        assert outcome.user.message_credits == 29
        assert outcome.user_guild.intimacy == 1
        assert len(economy.repos.user_guilds.find_all()) == 1

    def test_existing_role_is_kept(self, economy):
        economy.activity.ensure_user_guild_exists(1, 10, UserRole.ADMIN)
        outcome = economy.activity.ensure_user_guild_exists(1, 10, UserRole.USER)
        assert outcome.user.role == UserRole.ADMIN
