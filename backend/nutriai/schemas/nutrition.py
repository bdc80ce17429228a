"""Nutrition and meal schemas."""
import enum
import datetime
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from nutriai.schemas.base import CamelModel
from nutriai.schemas.user import MacroTargets


class MealType(str, enum.Enum):
    """Type of meal."""
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class FoodItem(CamelModel):
    """A food with nutrients per serving."""
    id: str
    name: str
    brand: Optional[str] = None
    serving_size: float
    serving_unit: str
    calories: float
    protein: float
    carbs: float
    fat: float
    fiber: Optional[float] = None
    sugar: Optional[float] = None
    sodium: Optional[float] = None  # mg
    verified: bool = False
    data_type: Optional[str] = None
    relevance_score: Optional[float] = None


class MealEntry(CamelModel):
    """A logged portion of a food; nutrients are for the logged quantity."""
    id: str
    user_id: str
    food_item_id: str
    meal_type: MealType
    quantity: float = Field(..., gt=0)
    unit: str
    calories: float = Field(..., ge=0)
    protein: float = Field(..., ge=0)
    carbs: float = Field(..., ge=0)
    fat: float = Field(..., ge=0)
    logged_at: datetime.datetime
    notes: Optional[str] = None

    @field_validator("logged_at")
    @classmethod
    def assume_utc(cls, value: datetime.datetime) -> datetime.datetime:
        """Timestamps without an offset are taken as UTC."""
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value


class DailyLog(CamelModel):
    """All meal entries of one user for one day."""
    user_id: str
    date: datetime.date
    total_calories: float = 0
    total_protein: float = 0
    total_carbs: float = 0
    total_fat: float = 0
    meal_entries: List[MealEntry] = Field(default_factory=list)


class DailyLogSummaryRequest(CamelModel):
    """Entries to aggregate, optionally with the targets to compare against."""
    date: datetime.date
    meal_entries: List[MealEntry] = Field(default_factory=list)
    targets: Optional[MacroTargets] = None


class NutrientProgress(CamelModel):
    """Progress toward one daily target."""
    consumed: float
    target: float
    remaining: float  # Never negative
    percent: float  # Of target, may exceed 100


class MealTotals(CamelModel):
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0
    entries: int = 0


class DailyLogSummary(CamelModel):
    """Aggregated day with per-meal totals and, when targets are given, progress."""
    log: DailyLog
    meals: Dict[MealType, MealTotals]
    progress: Optional[Dict[str, NutrientProgress]] = None
