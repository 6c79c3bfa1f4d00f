"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Secrets must be in the environment before tetobot.api.deps is imported:
# JWT_SECRET is validated at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)
os.environ.setdefault("BOT_API_KEY", "test-bot-api-key")
os.environ.setdefault("TOPGG_WEB_AUTH_TOKEN", "test-topgg-token")
os.environ.setdefault("POLAR_WEBHOOK_SECRET", "test-polar-secret")

import pytest  # noqa: E402
from sqlalchemy import BigInteger, Engine, create_engine, event  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tetobot.config import EconomyConfig  # noqa: E402
from tetobot.database.memory import memory_repositories  # noqa: E402
from tetobot.database.models import Base  # noqa: E402
from tetobot.database.repositories import Repositories, sql_repositories  # noqa: E402
from tetobot.services.economy import Economy, build_economy  # noqa: E402


# ---------------------------------------------------------------------------
# SQLite compatibility: BigInteger → INTEGER so it behaves like the PG
# BIGINT primary keys.
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all tetobot tables.

    Uses StaticPool so all threads share the same in-memory database
    (FastAPI runs sync endpoints in a thread pool, ``run_db`` uses
    ``asyncio.to_thread``).  Foreign keys are switched on so the
    ``ON DELETE CASCADE`` rules apply.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture(params=["memory", "sql"])
def repos(request) -> Repositories:
    """Every store-level test runs against both backings."""
    if request.param == "memory":
        return memory_repositories()
    return sql_repositories(request.getfixturevalue("db_engine"))


@pytest.fixture
def economy_config() -> EconomyConfig:
    return EconomyConfig()


def no_sleep(_seconds: float) -> None:
    """Stand-in for ``time.sleep`` so retry tests run instantly."""


@pytest.fixture
def economy(repos, economy_config) -> Economy:
    return build_economy(repos, economy_config, sleep=no_sleep)


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from tetobot.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def admin_token():
    return make_admin_token()
