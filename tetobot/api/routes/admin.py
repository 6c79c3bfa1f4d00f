"""
tetobot.api.routes.admin — Admin endpoints (JWT‑protected)
============================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, status

from tetobot.api.deps import EconomyDep, get_current_admin
from tetobot.api.schemas import AdminUserUpdate, user_dict
from tetobot.database.models import MAX_SNOWFLAKE
from tetobot.errors import DailyResetError, UserNotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/daily-reset")
def trigger_daily_reset(
    economy: EconomyDep,
    admin: dict = Depends(get_current_admin),
):
    """Run the daily refill/reset now (same job the scheduler runs)."""
    logger.info("Daily reset triggered manually by admin %s", admin.get("sub"))
    try:
        result = economy.daily_reset.perform_daily_reset()
    except DailyResetError as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))
    return {
        "data": {
            "creditCount": result.credit_count,
            "resetCount": result.reset_count,
            "durationMs": result.duration_ms,
            "creditFailures": result.credit_failures,
            "resetFailures": result.reset_failures,
        }
    }


@router.patch("/users/{user_id}")
def update_user(
    body: AdminUserUpdate,
    economy: EconomyDep,
    user_id: int = Path(gt=0, le=MAX_SNOWFLAKE),
    admin: dict = Depends(get_current_admin),
):
    values = body.model_dump(exclude_none=True)
    if not values:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Nothing to update")
    try:
        user = economy.repos.users.update(user_id, values)
    except UserNotFound:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")
    logger.info("Admin %s updated user %d: %s", admin.get("sub"), user_id, values)
    return {"data": {"user": user_dict(user)}}


@router.delete("/users/{user_id}")
def delete_user(
    economy: EconomyDep,
    user_id: int = Path(gt=0, le=MAX_SNOWFLAKE),
    admin: dict = Depends(get_current_admin),
):
    """Hard-delete a user; their guild relationships cascade."""
    if not economy.repos.users.delete(user_id):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")
    logger.info("Admin %s deleted user %d", admin.get("sub"), user_id)
    return {"data": {"message": "User deleted successfully"}}
