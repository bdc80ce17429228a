"""Meal photo analysis function."""
import logging

from fastapi import APIRouter, Depends, Request

from nutriai.schemas.auth import AuthenticatedUser
from nutriai.schemas.meal_analysis import MealAnalysisRequest, MealAnalysisResponse
from nutriai.services.ai_service import AIService, ai_service
from nutriai.utils.auth import get_current_user
from nutriai.utils.tracing import StageLogger, get_request_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyze-meal", tags=["Meal Analysis"])


def get_ai_service() -> AIService:
    return ai_service


@router.post("", response_model=MealAnalysisResponse, response_model_exclude_none=True)
async def analyze_meal(
    payload: MealAnalysisRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    service: AIService = Depends(get_ai_service),
):
    """
    Analyze a meal photo.

    Send ``imageUrl`` or a ``data:image/...`` ``imageBase64``; an optional
    ``voiceTranscription`` helps identify foods and portions.
    """
    trace = StageLogger(logger, "analyze-meal", get_request_id(request))
    request.state.trace = trace
    trace.checkpoint(
        "payload",
        {
            "userId": user.id,
            "hasImageUrl": bool(payload.image_url),
            "imageBase64Length": len(payload.image_base64 or ""),
            "hasVoice": bool(payload.voice_transcription),
        },
    )

    analysis = await service.analyze_meal(payload, trace)
    trace.checkpoint("success")
    return analysis
