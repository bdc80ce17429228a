"""Nutrition log routes."""
from fastapi import APIRouter, Depends

from nutriai.errors import ApiError
from nutriai.schemas.auth import AuthenticatedUser
from nutriai.schemas.nutrition import DailyLogSummary, DailyLogSummaryRequest
from nutriai.services.daily_log import summarize_day
from nutriai.utils.auth import get_current_user

router = APIRouter(prefix="/daily-log", tags=["Nutrition"])


@router.post("/summary", response_model=DailyLogSummary, response_model_exclude_none=True)
async def daily_log_summary(
    request: DailyLogSummaryRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """
    Aggregate the day's meal entries.

    Entries logged on other dates are ignored. When ``targets`` are sent,
    the response includes remaining amounts and percent of each target.
    """
    foreign = [e.id for e in request.meal_entries if e.user_id != current_user.id]
    if foreign:
        raise ApiError(
            "Meal entries must belong to the signed-in user",
            400,
            "validation",
            error="Invalid meal entries",
            extra={"entryIds": foreign},
        )

    return summarize_day(current_user.id, request.date, request.meal_entries, request.targets)
