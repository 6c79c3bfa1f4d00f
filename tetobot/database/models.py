"""
tetobot.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- users        — One row per Discord user, owns the message-credit balance
- guilds       — Discord servers the bot has seen
- user_guilds  — Per (user, guild) intimacy and daily activity counters

``users`` and ``user_guilds`` carry a ``version`` column.  Every
read-modify-write in the services is a compare-and-swap on it, so two
concurrent deductions cannot both spend the same balance.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

DEFAULT_MESSAGE_CREDITS = 30

# Largest value a signed BIGINT id column can hold.
MAX_SNOWFLAKE = 2**63 - 1


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all tetobot ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class UserRole(enum.StrEnum):
    USER = "user"
    ADMIN = "admin"


# ---------------------------------------------------------------------------
# Users: one row per Discord user
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=lambda e: [m.value for m in e]),
        default=UserRole.USER,
        nullable=False,
    )
    message_credits: Mapped[int] = mapped_column(
        BigInteger, default=DEFAULT_MESSAGE_CREDITS, nullable=False
    )
    last_voted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    inserted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    guilds: Mapped[list[UserGuild]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint("message_credits >= 0", name="ck_users_credits_non_negative"),
        Index("ix_users_last_voted_at", "last_voted_at"),
        Index("ix_users_message_credits", "message_credits"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.user_id} credits={self.message_credits} role={self.role}>"


# ---------------------------------------------------------------------------
# Guilds: Discord servers
# ---------------------------------------------------------------------------
class Guild(Base):
    __tablename__ = "guilds"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    inserted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    members: Mapped[list[UserGuild]] = relationship(
        back_populates="guild", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Guild id={self.guild_id}>"


# ---------------------------------------------------------------------------
# UserGuild: per (user, guild) engagement
# ---------------------------------------------------------------------------
class UserGuild(Base):
    """Intimacy and daily counters for one user inside one guild.

    Exists only while both parents exist (``ON DELETE CASCADE`` on both
    foreign keys).  Created lazily on the first recorded interaction.
    """
    __tablename__ = "user_guilds"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True
    )
    guild_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("guilds.guild_id", ondelete="CASCADE"), primary_key=True
    )
    intimacy: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    daily_message_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_feed: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    inserted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship(back_populates="guilds")
    guild: Mapped[Guild] = relationship(back_populates="members")

    __table_args__ = (
        CheckConstraint("intimacy >= 0", name="ck_user_guilds_intimacy_non_negative"),
        Index("ix_user_guilds_guild_intimacy", "guild_id", "intimacy"),
        Index("ix_user_guilds_guild_daily_count", "guild_id", "daily_message_count"),
        Index("ix_user_guilds_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserGuild user={self.user_id} guild={self.guild_id} "
            f"intimacy={self.intimacy} today={self.daily_message_count}>"
        )
