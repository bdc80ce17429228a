"""Food search function."""
import logging
import random
from typing import Union

from fastapi import APIRouter, Depends, Request, Response

from nutriai.config import get_settings
from nutriai.errors import ApiError
from nutriai.schemas.auth import AuthenticatedUser
from nutriai.schemas.food_search import (
    FlatFoodSearchResponse,
    FoodSearchRequest,
    GroupedFoodSearchResponse,
)
from nutriai.services.food_search import FoodSearchService, food_search_service
from nutriai.utils.auth import get_current_user
from nutriai.utils.rate_limit import SlidingWindowRateLimiter
from nutriai.utils.tracing import StageLogger, get_request_id

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/food-search", tags=["Food Search"])

search_rate_limiter = SlidingWindowRateLimiter(
    max_requests=settings.search_rate_limit_requests,
    window_seconds=settings.search_rate_limit_window_seconds,
)

# Share of requests that also sweep expired cache and limiter entries
CLEANUP_PROBABILITY = 0.1


def get_food_search_service() -> FoodSearchService:
    return food_search_service


def get_search_rate_limiter() -> SlidingWindowRateLimiter:
    return search_rate_limiter


async def enforce_rate_limit(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    limiter: SlidingWindowRateLimiter = Depends(get_search_rate_limiter),
) -> AuthenticatedUser:
    """Reject users that exceeded their per-minute search allowance."""
    if not limiter.is_allowed(user.id):
        logger.info(f"[food-search][{get_request_id(request)}] rate limit exceeded for {user.id}")
        raise ApiError(
            "You have exceeded the rate limit. Please wait a minute before trying again.",
            429,
            "rate-limiting",
            error="Too many requests",
        )
    return user


@router.post(
    "",
    response_model=Union[GroupedFoodSearchResponse, FlatFoodSearchResponse],
    response_model_exclude_none=True,
)
async def search_foods(
    payload: FoodSearchRequest,
    request: Request,
    response: Response,
    user: AuthenticatedUser = Depends(enforce_rate_limit),
    service: FoodSearchService = Depends(get_food_search_service),
    limiter: SlidingWindowRateLimiter = Depends(get_search_rate_limiter),
):
    """
    Search the USDA food database.

    Returns progressive disclosure groups by default, or a flat paginated
    list when ``grouped`` is false.
    """
    trace = StageLogger(logger, "food-search", get_request_id(request))
    trace.checkpoint(
        "start",
        {"userId": user.id, "query": payload.query, "limit": payload.limit, "page": payload.page},
    )
    request.state.trace = trace

    if random.random() < CLEANUP_PROBABILITY:
        service.cache.cleanup()
        limiter.cleanup()

    result = await service.search(payload, trace)
    response.headers["X-RateLimit-Remaining"] = str(limiter.remaining(user.id))
    trace.checkpoint("success")
    return result
