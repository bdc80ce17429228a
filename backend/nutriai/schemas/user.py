"""User profile and macro target schemas."""
import enum
from datetime import date
from typing import Optional

from pydantic import Field

from nutriai.schemas.base import CamelModel


class Sex(str, enum.Enum):
    """Biological sex for BMR calculations."""
    MALE = "male"
    FEMALE = "female"


class ActivityLevel(str, enum.Enum):
    """Activity level multipliers for TDEE."""
    SEDENTARY = "sedentary"  # Little or no exercise
    LIGHT = "light"  # Light exercise 1-3 days/week
    MODERATE = "moderate"  # Moderate exercise 3-5 days/week
    ACTIVE = "active"  # Hard exercise 6-7 days/week
    VERY_ACTIVE = "very_active"  # Very hard exercise, physical job


class Goal(str, enum.Enum):
    """Weight goal chosen during onboarding."""
    LOSE = "lose"
    MAINTAIN = "maintain"
    GAIN = "gain"


class MacroTargets(CamelModel):
    """Daily targets: kcal and grams of each macronutrient."""
    calories: int = Field(..., ge=0)
    protein: int = Field(..., ge=0)
    carbs: int = Field(..., ge=0)
    fat: int = Field(..., ge=0)


class User(CamelModel):
    """User profile as stored by the managed backend."""
    id: str
    email: str
    full_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    height: Optional[float] = Field(None, ge=50, le=300)  # cm
    weight: Optional[float] = Field(None, ge=20, le=500)  # kg
    gender: Optional[Sex] = None
    activity_level: Optional[ActivityLevel] = None
    goal: Optional[Goal] = None
    daily_calorie_target: Optional[int] = None
    macro_targets: Optional[MacroTargets] = None


class MacroSplit(CamelModel):
    """Share of daily calories from each macronutrient, in percent."""
    carbs: int
    protein: int
    fat: int


class MacroTargetsCalculateRequest(CamelModel):
    """Onboarding answers used to derive daily targets."""
    gender: Optional[Sex] = None
    age: Optional[int] = Field(None, ge=10, le=120)
    date_of_birth: Optional[date] = None  # Used when age is not given
    height: Optional[float] = Field(None, ge=50, le=300)  # cm
    weight: Optional[float] = Field(None, ge=20, le=500)  # kg
    activity_level: ActivityLevel = ActivityLevel.MODERATE
    goal: Goal = Goal.MAINTAIN


class MacroTargetsCalculation(CamelModel):
    """Calculated targets with the intermediate values that produced them."""
    targets: MacroTargets
    split: MacroSplit
    bmr: Optional[int] = None  # None when body metrics were incomplete
    tdee: int
