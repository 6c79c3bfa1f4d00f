"""
tetobot.errors — Economy Failure Taxonomy
==========================================

Every failure a caller of the economy services may need to branch on has
its own exception type.  The HTTP layer maps them to status codes; the
daily reset batch catches them per row.
"""

from __future__ import annotations


class EconomyError(Exception):
    """Base class for all tetobot domain errors."""


class InsufficientCredits(EconomyError):
    """A deduction asked for more credits than the user holds."""

    def __init__(self, user_id: int, balance: int, required: int) -> None:
        self.user_id = user_id
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient credits for user {user_id}: "
            f"has {balance}, needs {required}"
        )


class UserNotFound(EconomyError):
    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class RelationshipNotFound(EconomyError):
    def __init__(self, user_id: int, guild_id: int) -> None:
        self.user_id = user_id
        self.guild_id = guild_id
        super().__init__(f"User-guild relationship {user_id}:{guild_id} not found")


class UniqueConstraintViolation(EconomyError):
    """An insert collided with an existing row (usually a create race)."""


class StoreError(EconomyError):
    """The underlying store failed.  Transient unless proven otherwise."""


class VersionConflict(StoreError):
    """A compare-and-swap update lost to a concurrent writer."""


class DailyResetError(StoreError):
    """The daily reset could not even select the rows it should touch."""


class InvalidPayload(EconomyError):
    """A webhook body is malformed or references an unknown id."""
