"""Meal analysis schemas: photos, typed descriptions and corrections."""
import datetime
from typing import Any, List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_core import PydanticCustomError

from nutriai.schemas.base import CamelModel
from nutriai.schemas.nutrition import MealType


class MealAnalysisRequest(CamelModel):
    """Photo of a meal, by URL or data URI, with optional spoken context."""
    image_url: Optional[str] = None
    image_base64: Optional[str] = None  # data:image/...;base64,...
    voice_transcription: Optional[str] = None


class NutritionData(CamelModel):
    """Nutrition values; grams except calories (kcal) and sodium (mg)."""
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0
    fiber: Optional[float] = None
    sugar: Optional[float] = None
    sodium: Optional[float] = None


class AnalyzedFood(CamelModel):
    """One food item identified in the photo."""
    name: str
    quantity: str = ""
    nutrition: NutritionData
    confidence: float = Field(default=0.5, ge=0, le=1)


class MealAnalysisResponse(CamelModel):
    """Foods identified in a meal photo with summed nutrition."""
    foods: List[AnalyzedFood]
    total_nutrition: NutritionData
    confidence: float = Field(default=0.5, ge=0, le=1)
    notes: Optional[str] = None


class DescribedFood(CamelModel):
    """One food from a typed meal description; nutrients are for ``quantity`` ``unit``."""
    name: str
    quantity: float = 1
    unit: str = "serving"
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0
    fiber: Optional[float] = None
    sugar: Optional[float] = None
    sodium: Optional[float] = None  # mg


class DescribedMealAnalysis(CamelModel):
    """Foods in a typed meal description; totals are summed from the foods."""
    foods: List[DescribedFood]
    total_calories: float = 0
    total_protein: float = 0
    total_carbs: float = 0
    total_fat: float = 0
    confidence: float = Field(default=0.5, ge=0, le=1)
    notes: Optional[str] = None


class ChatMessage(CamelModel):
    """One turn of the conversation behind a meal analysis."""
    role: Literal["user", "assistant"]
    content: str


def _required_text(value: Any, message: str, title: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise PydanticCustomError("missing_text", message, {"title": title})
    return value.strip()


class LogMealRequest(CamelModel):
    """A meal described in words, e.g. "two eggs and a slice of toast"."""
    description: Optional[str] = Field(default=None, validate_default=True)
    meal_type: MealType = MealType.SNACK
    date: Optional[datetime.date] = None  # Defaults to today

    @field_validator("description", mode="before")
    @classmethod
    def check_description(cls, value: Any) -> str:
        return _required_text(value, "Meal description is required", "Invalid meal description")


class LogMealResponse(CamelModel):
    """
    Analysis of a described meal, ready for the client to save.

    ``correctionHistory`` is sent back with a correction to refine the analysis.
    """
    success: bool = True
    meal_analysis: DescribedMealAnalysis
    meal_type: MealType
    date: datetime.date
    correction_history: List[ChatMessage]


class RefineMealRequest(CamelModel):
    """A correction to an earlier analysis, e.g. "it was two eggs, not three"."""
    history: List[ChatMessage] = Field(default_factory=list, validate_default=True)
    correction_text: Optional[str] = Field(default=None, validate_default=True)

    @field_validator("history")
    @classmethod
    def check_history(cls, value: List[ChatMessage]) -> List[ChatMessage]:
        if not any(message.role == "assistant" for message in value):
            raise PydanticCustomError(
                "missing_history",
                "An earlier analysis is required to apply a correction",
                {"title": "Invalid correction"},
            )
        return value

    @field_validator("correction_text", mode="before")
    @classmethod
    def check_correction(cls, value: Any) -> str:
        return _required_text(value, "Correction text is required", "Invalid correction")


class RefineMealResponse(CamelModel):
    """The corrected analysis and the history extended with this turn."""
    success: bool = True
    new_analysis: DescribedMealAnalysis
    new_history: List[ChatMessage]
