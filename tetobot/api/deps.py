"""
tetobot.api.deps — FastAPI dependency injection
=================================================
"""

from __future__ import annotations

import os
import secrets
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from tetobot.config import TetoConfig, load_config
from tetobot.database.engine import create_db_engine
from tetobot.database.repositories import sql_repositories
from tetobot.services.economy import Economy, build_economy

_WEAK_SECRETS = frozenset({
    "tetobot-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> TetoConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_economy() -> Economy:
    """Economy services backed by the production SQL store."""
    return build_economy(sql_repositories(get_engine()), get_config().economy)


def env_secret(name: str) -> str:
    """Read a shared secret from the environment, 503 if it is not configured."""
    value = os.getenv(name, "")
    if not value:
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE, f"{name} is not configured"
        )
    return value


def require_bot_key(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Bot-to-backend routes: ``Authorization: Bearer <BOT_API_KEY>``."""
    expected = f"Bearer {env_secret('BOT_API_KEY')}"
    # Headers arrive latin-1 decoded; compare_digest rejects non-ASCII str.
    if not authorization or not secrets.compare_digest(
        authorization.encode(), expected.encode()
    ):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized")


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin user payload. Raises 401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload


EconomyDep = Annotated[Economy, Depends(get_economy)]
