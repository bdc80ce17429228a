"""API routes."""
from nutriai.routes.food_search import router as food_search_router
from nutriai.routes.transcription import router as transcription_router
from nutriai.routes.meal_analysis import router as meal_analysis_router
from nutriai.routes.meal_logging import router as meal_logging_router
from nutriai.routes.insights import router as insights_router
from nutriai.routes.user import router as user_router
from nutriai.routes.nutrition import router as nutrition_router

__all__ = [
    "food_search_router",
    "transcription_router",
    "meal_analysis_router",
    "meal_logging_router",
    "insights_router",
    "user_router",
    "nutrition_router",
]
