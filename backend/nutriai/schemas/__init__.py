"""Pydantic schemas for API validation."""
from nutriai.schemas.user import (
    Sex,
    ActivityLevel,
    Goal,
    User,
    MacroTargets,
    MacroTargetsCalculateRequest,
    MacroTargetsCalculation,
)
from nutriai.schemas.nutrition import (
    MealType,
    FoodItem,
    MealEntry,
    DailyLog,
    DailyLogSummaryRequest,
    DailyLogSummary,
)
from nutriai.schemas.food_search import (
    FoodSearchRequest,
    FoodSearchItem,
    GroupedFoodSearchResponse,
    FlatFoodSearchResponse,
)
from nutriai.schemas.transcription import (
    TranscriptionJSONRequest,
    TranscriptionResponse,
)
from nutriai.schemas.meal_analysis import (
    MealAnalysisRequest,
    MealAnalysisResponse,
    LogMealRequest,
    LogMealResponse,
    RefineMealRequest,
    RefineMealResponse,
)
from nutriai.schemas.insights import (
    InsightsRequest,
    InsightsResponse,
)
from nutriai.schemas.auth import AuthenticatedUser

__all__ = [
    # User
    "Sex",
    "ActivityLevel",
    "Goal",
    "User",
    "MacroTargets",
    "MacroTargetsCalculateRequest",
    "MacroTargetsCalculation",
    # Nutrition
    "MealType",
    "FoodItem",
    "MealEntry",
    "DailyLog",
    "DailyLogSummaryRequest",
    "DailyLogSummary",
    # Food search
    "FoodSearchRequest",
    "FoodSearchItem",
    "GroupedFoodSearchResponse",
    "FlatFoodSearchResponse",
    # Transcription
    "TranscriptionJSONRequest",
    "TranscriptionResponse",
    # Meal analysis
    "MealAnalysisRequest",
    "MealAnalysisResponse",
    "LogMealRequest",
    "LogMealResponse",
    "RefineMealRequest",
    "RefineMealResponse",
    # Insights
    "InsightsRequest",
    "InsightsResponse",
    # Auth
    "AuthenticatedUser",
]
