"""
tetobot.api.routes.webhooks — Vote & purchase webhooks
========================================================

- ``POST /webhook`` — top.gg votes, authenticated by the raw
  ``Authorization`` header equalling ``TOPGG_WEB_AUTH_TOKEN``.
- ``POST /webhooks/polar`` — Polar purchases, authenticated by a
  Standard Webhooks signature made with ``POLAR_WEBHOOK_SECRET``.

Status codes: 400 malformed body, 404 unknown voter/buyer, 500 when the
store keeps failing after the intake's retries.  Senders retry on non-2xx.
"""

from __future__ import annotations

import json
import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Request, Response, status

from tetobot.api.deps import EconomyDep, env_secret
from tetobot.api.signatures import SignatureError, verify
from tetobot.database.engine import run_db
from tetobot.errors import InvalidPayload, StoreError, UserNotFound

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


def _parse_json(body: bytes) -> dict:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid Body")
    if not isinstance(payload, dict):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid Body")
    return payload


async def _run_intake(handler, payload: dict, what: str):
    try:
        return await run_db(handler, payload)
    except InvalidPayload as exc:
        logger.warning("Rejected %s webhook: %s", what, exc)
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid Body")
    except UserNotFound as exc:
        logger.warning("Rejected %s webhook: %s", what, exc)
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")
    except StoreError:
        logger.exception("Failed to process %s webhook", what)
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, f"Failed to process {what}"
        )


# ---------------------------------------------------------------------------
# POST /webhook: top.gg vote
# ---------------------------------------------------------------------------
@router.post("/webhook", status_code=status.HTTP_204_NO_CONTENT)
async def topgg_vote(
    request: Request,
    economy: EconomyDep,
    authorization: Annotated[str | None, Header()] = None,
):
    token = env_secret("TOPGG_WEB_AUTH_TOKEN")
    if not authorization or not secrets.compare_digest(
        authorization.encode(), token.encode()
    ):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Unauthorized")

    payload = _parse_json(await request.body())
    await _run_intake(economy.bonus_intake.handle_vote, payload, "vote")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# POST /webhooks/polar: purchase
# ---------------------------------------------------------------------------
@router.post("/webhooks/polar", status_code=status.HTTP_202_ACCEPTED)
async def polar_purchase(request: Request, economy: EconomyDep):
    secret = env_secret("POLAR_WEBHOOK_SECRET")
    body = await request.body()
    try:
        verify(secret, request.headers, body)
    except SignatureError as exc:
        logger.warning("Rejected Polar webhook: %s", exc)
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid signature")

    payload = _parse_json(body)
    result = await _run_intake(economy.bonus_intake.handle_purchase, payload, "purchase")
    return {"awarded": result.awarded, "credits": result.amount}
