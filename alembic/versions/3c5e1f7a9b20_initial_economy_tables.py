"""Initial economy tables

users, guilds and user_guilds with optimistic-lock version columns and
non-negative checks on credits and intimacy.

Revision ID: 3c5e1f7a9b20
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "3c5e1f7a9b20"
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum("user", "admin", name="user_role")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.BigInteger(), primary_key=True),
        sa.Column("role", user_role, nullable=False, server_default="user"),
        sa.Column("message_credits", sa.BigInteger(), nullable=False, server_default="30"),
        sa.Column("last_voted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("inserted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("message_credits >= 0", name="ck_users_credits_non_negative"),
    )
    op.create_index("ix_users_last_voted_at", "users", ["last_voted_at"])
    op.create_index("ix_users_message_credits", "users", ["message_credits"])

    op.create_table(
        "guilds",
        sa.Column("guild_id", sa.BigInteger(), primary_key=True),
        sa.Column("inserted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "user_guilds",
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("users.user_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "guild_id",
            sa.BigInteger(),
            sa.ForeignKey("guilds.guild_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("intimacy", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_message_count", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_feed", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("inserted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("intimacy >= 0", name="ck_user_guilds_intimacy_non_negative"),
    )
    op.create_index("ix_user_guilds_guild_intimacy", "user_guilds", ["guild_id", "intimacy"])
    op.create_index(
        "ix_user_guilds_guild_daily_count", "user_guilds", ["guild_id", "daily_message_count"]
    )
    op.create_index("ix_user_guilds_user_id", "user_guilds", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_user_guilds_user_id", table_name="user_guilds")
    op.drop_index("ix_user_guilds_guild_daily_count", table_name="user_guilds")
    op.drop_index("ix_user_guilds_guild_intimacy", table_name="user_guilds")
    op.drop_table("user_guilds")
    op.drop_table("guilds")
    op.drop_index("ix_users_message_credits", table_name="users")
    op.drop_index("ix_users_last_voted_at", table_name="users")
    op.drop_table("users")
    user_role.drop(op.get_bind(), checkfirst=True)
