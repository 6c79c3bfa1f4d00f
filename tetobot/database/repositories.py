"""
tetobot.database.repositories — Ledger Store Interfaces & SQL Backing
======================================================================

The economy services never touch a :class:`~sqlalchemy.orm.Session`
directly.  They talk to three small store interfaces:

- :class:`UserRepository`       — ``users`` rows
- :class:`GuildRepository`      — ``guilds`` rows
- :class:`UserGuildRepository`  — ``user_guilds`` rows

Each interface has two implementations: the SQLAlchemy one below and the
in-memory one in :mod:`tetobot.database.memory`.  Which one a service
gets is decided once, when the :class:`Repositories` bundle is built.

Update semantics (both backings):

* ``update(..., expected_version=v)`` only applies when the row's
  ``version`` still equals *v*; otherwise :class:`VersionConflict`.
* Every successful update bumps ``version`` and stamps ``updated_at``.
* Updating a missing row raises :class:`UserNotFound` /
  :class:`RelationshipNotFound`.

Failures are translated into :mod:`tetobot.errors` types: a duplicate
insert becomes :class:`UniqueConstraintViolation`, anything else the
driver raises becomes :class:`StoreError`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import Engine, delete, exists, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tetobot.database.engine import get_session
from tetobot.database.models import (
    DEFAULT_MESSAGE_CREDITS,
    Guild,
    User,
    UserGuild,
    UserRole,
)
from tetobot.errors import (
    EconomyError,
    RelationshipNotFound,
    StoreError,
    UniqueConstraintViolation,
    UserNotFound,
    VersionConflict,
)

logger = logging.getLogger(__name__)

# Columns callers may change through ``update``.  Keys, version and
# timestamps are managed by the repository itself.
USER_UPDATABLE: frozenset[str] = frozenset({"role", "message_credits", "last_voted_at"})
USER_GUILD_UPDATABLE: frozenset[str] = frozenset({
    "intimacy", "daily_message_count", "last_message_at", "last_feed",
})


def utcnow() -> datetime:
    return datetime.now(UTC)


def check_columns(values: Mapping[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(values) - allowed
    if unknown:
        raise ValueError(f"Cannot update column(s): {', '.join(sorted(unknown))}")


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------
class UserRepository(Protocol):
    def find_by_id(self, user_id: int) -> User | None: ...

    def find_all(self) -> list[User]: ...

    def find_below_credits(self, cap: int) -> list[User]: ...

    def create(
        self,
        user_id: int,
        *,
        role: UserRole = UserRole.USER,
        message_credits: int = DEFAULT_MESSAGE_CREDITS,
    ) -> User: ...

    def update(
        self,
        user_id: int,
        values: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> User: ...

    def delete(self, user_id: int) -> bool: ...


class GuildRepository(Protocol):
    def find_by_id(self, guild_id: int) -> Guild | None: ...

    def find_all(self) -> list[Guild]: ...

    def create(self, guild_id: int) -> Guild: ...

    def delete(self, guild_id: int) -> bool: ...


class UserGuildRepository(Protocol):
    def find_by_composite_key(self, user_id: int, guild_id: int) -> UserGuild | None: ...

    def find_all(self) -> list[UserGuild]: ...

    def find_needing_reset(self) -> list[UserGuild]: ...

    def find_top_by_intimacy(self, guild_id: int, limit: int) -> list[UserGuild]: ...

    def create(self, user_id: int, guild_id: int) -> UserGuild: ...

    def update(
        self,
        user_id: int,
        guild_id: int,
        values: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> UserGuild: ...

    def delete(self, user_id: int, guild_id: int) -> bool: ...


@dataclass(frozen=True, slots=True)
class Repositories:
    """The three stores, bundled so services can be wired in one call."""

    users: UserRepository
    guilds: GuildRepository
    user_guilds: UserGuildRepository


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------
@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except EconomyError:
        raise
    except SQLAlchemyError as exc:
        logger.warning("Store failure while trying to %s: %s", action, exc)
        raise StoreError(f"Failed to {action}: {exc}") from exc


# ---------------------------------------------------------------------------
# SQLAlchemy implementations
# ---------------------------------------------------------------------------
class SqlUserRepository:
    """``users`` table access through a SQLAlchemy :class:`Engine`."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def find_by_id(self, user_id: int) -> User | None:
        with _store_errors(f"find user {user_id}"), get_session(self.engine) as session:
            return session.get(User, user_id)

    def find_all(self) -> list[User]:
        with _store_errors("find all users"), get_session(self.engine) as session:
            return list(session.scalars(select(User).order_by(User.user_id)).all())

    def find_below_credits(self, cap: int) -> list[User]:
        with _store_errors("find users needing credit refill"), get_session(self.engine) as session:
            return list(
                session.scalars(
                    select(User)
                    .where(User.message_credits < cap)
                    .order_by(User.user_id)
                ).all()
            )

    def create(
        self,
        user_id: int,
        *,
        role: UserRole = UserRole.USER,
        message_credits: int = DEFAULT_MESSAGE_CREDITS,
    ) -> User:
        with _store_errors(f"create user {user_id}"):
            try:
                with get_session(self.engine) as session:
                    user = User(
                        user_id=user_id,
                        role=role,
                        message_credits=message_credits,
                        version=1,
                    )
                    session.add(user)
                    session.flush()
                    session.refresh(user)
                    return user
            except IntegrityError as exc:
                if self.find_by_id(user_id) is not None:
                    raise UniqueConstraintViolation(f"User {user_id} already exists") from exc
                raise

    def update(
        self,
        user_id: int,
        values: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> User:
        check_columns(values, USER_UPDATABLE)
        with _store_errors(f"update user {user_id}"), get_session(self.engine) as session:
            stmt = (
                update(User)
                .where(User.user_id == user_id)
                .values(**values, version=User.version + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if expected_version is not None:
                stmt = stmt.where(User.version == expected_version)
            result = session.execute(stmt)
            if result.rowcount == 0:
                if session.get(User, user_id) is None:
                    raise UserNotFound(user_id)
                raise VersionConflict(
                    f"User {user_id} changed since version {expected_version}"
                )
            return session.get(User, user_id)

    def delete(self, user_id: int) -> bool:
        with _store_errors(f"delete user {user_id}"), get_session(self.engine) as session:
            result = session.execute(delete(User).where(User.user_id == user_id))
            return result.rowcount > 0


class SqlGuildRepository:
    """``guilds`` table access through a SQLAlchemy :class:`Engine`."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def find_by_id(self, guild_id: int) -> Guild | None:
        with _store_errors(f"find guild {guild_id}"), get_session(self.engine) as session:
            return session.get(Guild, guild_id)

    def find_all(self) -> list[Guild]:
        with _store_errors("find all guilds"), get_session(self.engine) as session:
            return list(session.scalars(select(Guild).order_by(Guild.guild_id)).all())

    def create(self, guild_id: int) -> Guild:
        with _store_errors(f"create guild {guild_id}"):
            try:
                with get_session(self.engine) as session:
                    guild = Guild(guild_id=guild_id)
                    session.add(guild)
                    session.flush()
                    session.refresh(guild)
                    return guild
            except IntegrityError as exc:
                if self.find_by_id(guild_id) is not None:
                    raise UniqueConstraintViolation(f"Guild {guild_id} already exists") from exc
                raise

    def delete(self, guild_id: int) -> bool:
        with _store_errors(f"delete guild {guild_id}"), get_session(self.engine) as session:
            result = session.execute(delete(Guild).where(Guild.guild_id == guild_id))
            return result.rowcount > 0


class SqlUserGuildRepository:
    """``user_guilds`` table access through a SQLAlchemy :class:`Engine`."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def find_by_composite_key(self, user_id: int, guild_id: int) -> UserGuild | None:
        with _store_errors(f"find user guild {user_id}:{guild_id}"), \
                get_session(self.engine) as session:
            return session.get(UserGuild, (user_id, guild_id))

    def find_all(self) -> list[UserGuild]:
        with _store_errors("find all user guilds"), get_session(self.engine) as session:
            return list(
                session.scalars(
                    select(UserGuild).order_by(UserGuild.guild_id, UserGuild.user_id)
                ).all()
            )

    def find_needing_reset(self) -> list[UserGuild]:
        with _store_errors("find user guilds needing reset"), \
                get_session(self.engine) as session:
            return list(
                session.scalars(
                    select(UserGuild)
                    .where(
                        or_(
                            UserGuild.daily_message_count > 0,
                            UserGuild.last_feed.isnot(None),
                        )
                    )
                    .order_by(UserGuild.guild_id, UserGuild.user_id)
                ).all()
            )

    def find_top_by_intimacy(self, guild_id: int, limit: int) -> list[UserGuild]:
        with _store_errors(f"get intimacy leaderboard for guild {guild_id}"), \
                get_session(self.engine) as session:
            return list(
                session.scalars(
                    select(UserGuild)
                    .where(UserGuild.guild_id == guild_id)
                    .order_by(UserGuild.intimacy.desc(), UserGuild.user_id.asc())
                    .limit(limit)
                ).all()
            )

    def create(self, user_id: int, guild_id: int) -> UserGuild:
        with _store_errors(f"create user guild {user_id}:{guild_id}"):
            try:
                with get_session(self.engine) as session:
                    row = UserGuild(
                        user_id=user_id,
                        guild_id=guild_id,
                        intimacy=0,
                        daily_message_count=0,
                        last_message_at=None,
                        last_feed=None,
                        version=1,
                    )
                    session.add(row)
                    session.flush()
                    session.refresh(row)
                    return row
            except IntegrityError as exc:
                if self._exists(user_id, guild_id):
                    raise UniqueConstraintViolation(
                        f"User guild {user_id}:{guild_id} already exists"
                    ) from exc
                raise

    def _exists(self, user_id: int, guild_id: int) -> bool:
        with get_session(self.engine) as session:
            return bool(
                session.scalar(
                    select(
                        exists().where(
                            UserGuild.user_id == user_id,
                            UserGuild.guild_id == guild_id,
                        )
                    )
                )
            )

    def update(
        self,
        user_id: int,
        guild_id: int,
        values: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> UserGuild:
        check_columns(values, USER_GUILD_UPDATABLE)
        with _store_errors(f"update user guild {user_id}:{guild_id}"), \
                get_session(self.engine) as session:
            stmt = (
                update(UserGuild)
                .where(UserGuild.user_id == user_id, UserGuild.guild_id == guild_id)
                .values(**values, version=UserGuild.version + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if expected_version is not None:
                stmt = stmt.where(UserGuild.version == expected_version)
            result = session.execute(stmt)
            if result.rowcount == 0:
                if session.get(UserGuild, (user_id, guild_id)) is None:
                    raise RelationshipNotFound(user_id, guild_id)
                raise VersionConflict(
                    f"User guild {user_id}:{guild_id} changed since version {expected_version}"
                )
            return session.get(UserGuild, (user_id, guild_id))

    def delete(self, user_id: int, guild_id: int) -> bool:
        with _store_errors(f"delete user guild {user_id}:{guild_id}"), \
                get_session(self.engine) as session:
            result = session.execute(
                delete(UserGuild).where(
                    UserGuild.user_id == user_id, UserGuild.guild_id == guild_id
                )
            )
            return result.rowcount > 0


def sql_repositories(engine: Engine) -> Repositories:
    """Bundle the SQLAlchemy-backed stores for *engine*."""
    return Repositories(
        users=SqlUserRepository(engine),
        guilds=SqlGuildRepository(engine),
        user_guilds=SqlUserGuildRepository(engine),
    )
