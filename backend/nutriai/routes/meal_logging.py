"""Typed meal logging and correction functions."""
import datetime
import logging

from fastapi import APIRouter, Depends, Request

from nutriai.routes.meal_analysis import get_ai_service
from nutriai.schemas.auth import AuthenticatedUser
from nutriai.schemas.meal_analysis import (
    ChatMessage,
    LogMealRequest,
    LogMealResponse,
    RefineMealRequest,
    RefineMealResponse,
)
from nutriai.services.ai_service import AIService, analysis_message
from nutriai.utils.auth import get_current_user
from nutriai.utils.tracing import StageLogger, get_request_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Meal Analysis"])


@router.post("/log-meal-ai", response_model=LogMealResponse, response_model_exclude_none=True)
async def log_meal_ai(
    payload: LogMealRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    service: AIService = Depends(get_ai_service),
):
    """
    Analyze a typed meal description.

    Nothing is stored: the client saves the returned analysis under
    ``mealType`` and ``date`` and keeps ``correctionHistory`` for
    refine-meal-analysis.
    """
    trace = StageLogger(logger, "log-meal-ai", get_request_id(request))
    request.state.trace = trace
    trace.checkpoint(
        "payload",
        {
            "userId": user.id,
            "mealType": payload.meal_type.value,
            "descriptionLength": len(payload.description),
        },
    )

    analysis = await service.analyze_description(payload.description, trace)
    trace.checkpoint("success")
    return LogMealResponse(
        meal_analysis=analysis,
        meal_type=payload.meal_type,
        date=payload.date or datetime.date.today(),
        correction_history=[
            ChatMessage(role="user", content=payload.description),
            analysis_message(analysis),
        ],
    )


@router.post("/refine-meal-analysis", response_model=RefineMealResponse, response_model_exclude_none=True)
async def refine_meal_analysis(
    payload: RefineMealRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    service: AIService = Depends(get_ai_service),
):
    """
    Correct an earlier analysis, e.g. "it was oat milk, not whole milk".

    Send the ``correctionHistory`` returned by log-meal-ai (or the
    ``newHistory`` of an earlier correction) as ``history``.
    """
    trace = StageLogger(logger, "refine-meal-analysis", get_request_id(request))
    request.state.trace = trace
    trace.checkpoint(
        "payload",
        {
            "userId": user.id,
            "turns": len(payload.history),
            "correctionLength": len(payload.correction_text),
        },
    )

    analysis, history = await service.refine_analysis(payload.history, payload.correction_text, trace)
    trace.checkpoint("success")
    return RefineMealResponse(new_analysis=analysis, new_history=history)
