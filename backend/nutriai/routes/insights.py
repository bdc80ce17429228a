"""Weekly insights function."""
import logging

from fastapi import APIRouter, Depends, Request

from nutriai.errors import ApiError
from nutriai.schemas.auth import AuthenticatedUser
from nutriai.schemas.insights import InsightsRequest, InsightsResponse
from nutriai.services.insights import generate_insights
from nutriai.utils.auth import get_current_user
from nutriai.utils.tracing import StageLogger, get_request_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/generate-insights", tags=["Nutrition"])


@router.post("", response_model=InsightsResponse, response_model_exclude_none=True)
async def weekly_insights(
    payload: InsightsRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
):
    """
    Find up to three patterns in the last seven days of daily totals.

    Until seven days are logged the status is ``INSUFFICIENT_DATA`` with
    ``daysRemaining``.
    """
    trace = StageLogger(logger, "generate-insights", get_request_id(request))
    request.state.trace = trace
    trace.checkpoint("payload", {"userId": user.id, "logCount": len(payload.daily_logs)})

    foreign = sorted({str(log.date) for log in payload.daily_logs if log.user_id != user.id})
    if foreign:
        raise ApiError(
            "Daily logs must belong to the signed-in user",
            400,
            "validation",
            error="Invalid daily logs",
            extra={"dates": foreign},
        )

    result = generate_insights(payload.daily_logs, payload.end_date)
    trace.checkpoint(
        "success",
        {"status": result.status, "insightCount": len(result.insights or [])},
    )
    return result
