"""
tetobot.database.memory — In-Memory Ledger Store
=================================================

A dictionary-backed implementation of the three store interfaces in
:mod:`tetobot.database.repositories`.  Used by the test-suite and
anywhere a service needs a store but no database is available.

Behaviour mirrors the SQL backing: unique keys, foreign keys with cascade
delete, compare-and-swap on ``version``, and no shared references.  Every
row handed out is a detached copy, so mutating it never changes the
store.  A single lock makes each call atomic.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any, TypeVar

from tetobot.database.models import (
    DEFAULT_MESSAGE_CREDITS,
    Base,
    Guild,
    User,
    UserGuild,
    UserRole,
)
from tetobot.database.repositories import (
    USER_GUILD_UPDATABLE,
    USER_UPDATABLE,
    Repositories,
    check_columns,
    utcnow,
)
from tetobot.errors import (
    RelationshipNotFound,
    StoreError,
    UniqueConstraintViolation,
    UserNotFound,
    VersionConflict,
)

M = TypeVar("M", bound=Base)


def _copy(row: M) -> M:
    """Return a fresh, session-less copy of *row* with the same column values."""
    cls = type(row)
    return cls(**{col.key: getattr(row, col.key) for col in cls.__table__.columns})


class MemoryStore:
    """Backing dictionaries shared by the three memory repositories."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users: dict[int, User] = {}
        self.guilds: dict[int, Guild] = {}
        self.user_guilds: dict[tuple[int, int], UserGuild] = {}


class MemoryUserRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def find_by_id(self, user_id: int) -> User | None:
        with self.store.lock:
            row = self.store.users.get(user_id)
            return _copy(row) if row is not None else None

    def find_all(self) -> list[User]:
        with self.store.lock:
            return [_copy(self.store.users[k]) for k in sorted(self.store.users)]

    def find_below_credits(self, cap: int) -> list[User]:
        with self.store.lock:
            return [
                _copy(self.store.users[k])
                for k in sorted(self.store.users)
                if self.store.users[k].message_credits < cap
            ]

    def create(
        self,
        user_id: int,
        *,
        role: UserRole = UserRole.USER,
        message_credits: int = DEFAULT_MESSAGE_CREDITS,
    ) -> User:
        with self.store.lock:
            if user_id in self.store.users:
                raise UniqueConstraintViolation(f"User {user_id} already exists")
            if message_credits < 0:
                raise StoreError("message_credits must be >= 0")
            now = utcnow()
            row = User(
                user_id=user_id,
                role=role,
                message_credits=message_credits,
                last_voted_at=None,
                version=1,
                inserted_at=now,
                updated_at=now,
            )
            self.store.users[user_id] = row
            return _copy(row)

    def update(
        self,
        user_id: int,
        values: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> User:
        check_columns(values, USER_UPDATABLE)
        with self.store.lock:
            row = self.store.users.get(user_id)
            if row is None:
                raise UserNotFound(user_id)
            if expected_version is not None and row.version != expected_version:
                raise VersionConflict(
                    f"User {user_id} changed since version {expected_version}"
                )
            if values.get("message_credits", 0) < 0:
                raise StoreError("message_credits must be >= 0")
            for key, value in values.items():
                setattr(row, key, value)
            row.version += 1
            row.updated_at = utcnow()
            return _copy(row)

    def delete(self, user_id: int) -> bool:
        with self.store.lock:
            if self.store.users.pop(user_id, None) is None:
                return False
            for key in [k for k in self.store.user_guilds if k[0] == user_id]:
                del self.store.user_guilds[key]
            return True


class MemoryGuildRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def find_by_id(self, guild_id: int) -> Guild | None:
        with self.store.lock:
            row = self.store.guilds.get(guild_id)
            return _copy(row) if row is not None else None

    def find_all(self) -> list[Guild]:
        with self.store.lock:
            return [_copy(self.store.guilds[k]) for k in sorted(self.store.guilds)]

    def create(self, guild_id: int) -> Guild:
        with self.store.lock:
            if guild_id in self.store.guilds:
                raise UniqueConstraintViolation(f"Guild {guild_id} already exists")
            now = utcnow()
            row = Guild(guild_id=guild_id, inserted_at=now, updated_at=now)
            self.store.guilds[guild_id] = row
            return _copy(row)

    def delete(self, guild_id: int) -> bool:
        with self.store.lock:
            if self.store.guilds.pop(guild_id, None) is None:
                return False
            for key in [k for k in self.store.user_guilds if k[1] == guild_id]:
                del self.store.user_guilds[key]
            return True


class MemoryUserGuildRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def find_by_composite_key(self, user_id: int, guild_id: int) -> UserGuild | None:
        with self.store.lock:
            row = self.store.user_guilds.get((user_id, guild_id))
            return _copy(row) if row is not None else None

    def find_all(self) -> list[UserGuild]:
        with self.store.lock:
            return [
                _copy(row)
                for _, row in sorted(
                    self.store.user_guilds.items(), key=lambda kv: (kv[0][1], kv[0][0])
                )
            ]

    def find_needing_reset(self) -> list[UserGuild]:
        return [
            row for row in self.find_all()
            if row.daily_message_count > 0 or row.last_feed is not None
        ]

    def find_top_by_intimacy(self, guild_id: int, limit: int) -> list[UserGuild]:
        with self.store.lock:
            rows = [r for (_, g), r in self.store.user_guilds.items() if g == guild_id]
            rows.sort(key=lambda r: (-r.intimacy, r.user_id))
            return [_copy(r) for r in rows[:limit]]

    def create(self, user_id: int, guild_id: int) -> UserGuild:
        with self.store.lock:
            if (user_id, guild_id) in self.store.user_guilds:
                raise UniqueConstraintViolation(
                    f"User guild {user_id}:{guild_id} already exists"
                )
            if user_id not in self.store.users or guild_id not in self.store.guilds:
                raise StoreError(
                    f"Foreign key violation creating user guild {user_id}:{guild_id}"
                )
            now = utcnow()
            row = UserGuild(
                user_id=user_id,
                guild_id=guild_id,
                intimacy=0,
                daily_message_count=0,
                last_message_at=None,
                last_feed=None,
                version=1,
                inserted_at=now,
                updated_at=now,
            )
            self.store.user_guilds[(user_id, guild_id)] = row
            return _copy(row)

    def update(
        self,
        user_id: int,
        guild_id: int,
        values: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> UserGuild:
        check_columns(values, USER_GUILD_UPDATABLE)
        with self.store.lock:
            row = self.store.user_guilds.get((user_id, guild_id))
            if row is None:
                raise RelationshipNotFound(user_id, guild_id)
            if expected_version is not None and row.version != expected_version:
                raise VersionConflict(
                    f"User guild {user_id}:{guild_id} changed since version {expected_version}"
                )
            if values.get("intimacy", 0) < 0:
                raise StoreError("intimacy must be >= 0")
            for key, value in values.items():
                setattr(row, key, value)
            row.version += 1
            row.updated_at = utcnow()
            return _copy(row)

    def delete(self, user_id: int, guild_id: int) -> bool:
        with self.store.lock:
            return self.store.user_guilds.pop((user_id, guild_id), None) is not None


def memory_repositories(store: MemoryStore | None = None) -> Repositories:
    """Bundle memory-backed stores sharing one :class:`MemoryStore`."""
    store = store or MemoryStore()
    return Repositories(
        users=MemoryUserRepository(store),
        guilds=MemoryGuildRepository(store),
        user_guilds=MemoryUserGuildRepository(store),
    )
