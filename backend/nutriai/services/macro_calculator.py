"""Macro nutrient calculator using Mifflin-St Jeor equation."""
import math
from datetime import date
from typing import Optional

from nutriai.schemas.user import (
    ActivityLevel,
    Goal,
    MacroSplit,
    MacroTargets,
    MacroTargetsCalculateRequest,
    MacroTargetsCalculation,
    Sex,
    User,
)


# Activity level multipliers for TDEE calculation
ACTIVITY_MULTIPLIERS = {
    ActivityLevel.SEDENTARY: 1.2,      # Little or no exercise
    ActivityLevel.LIGHT: 1.375,         # Light exercise 1-3 days/week
    ActivityLevel.MODERATE: 1.55,       # Moderate exercise 3-5 days/week
    ActivityLevel.ACTIVE: 1.725,        # Hard exercise 6-7 days/week
    ActivityLevel.VERY_ACTIVE: 1.9,     # Very hard exercise, physical job
}

# Multiplier applied to TDEE for each goal
GOAL_FACTORS = {
    Goal.LOSE: 0.8,       # 20% deficit
    Goal.MAINTAIN: 1.0,
    Goal.GAIN: 1.15,      # 15% surplus
}

# Percent of calories from carbs/protein/fat
MACRO_SPLITS = {
    Goal.LOSE: MacroSplit(carbs=40, protein=40, fat=20),
    Goal.MAINTAIN: MacroSplit(carbs=45, protein=30, fat=25),
    Goal.GAIN: MacroSplit(carbs=50, protein=30, fat=20),
}

# Base calories when body metrics are incomplete
FALLBACK_BASE_CALORIES = {
    Sex.MALE: 1800,
    Sex.FEMALE: 1600,
}

CALORIES_PER_GRAM_CARBS = 4
CALORIES_PER_GRAM_PROTEIN = 4
CALORIES_PER_GRAM_FAT = 9

CALORIE_ROUNDING_STEP = 50


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def round_to_nearest(value: float, step: int) -> int:
    return round_half_up(value / step) * step


def age_from_birth_date(birth_date: date, today: Optional[date] = None) -> int:
    """Age in whole years on ``today``."""
    today = today or date.today()
    had_birthday = (today.month, today.day) >= (birth_date.month, birth_date.day)
    return today.year - birth_date.year - (0 if had_birthday else 1)


class MacroCalculator:
    """
    Calculator for daily calorie and macro targets from onboarding answers.

    Uses the Mifflin-St Jeor equation for BMR calculation:
    - Male:   BMR = (10 × weight_kg) + (6.25 × height_cm) - (5 × age) + 5
    - Female: BMR = (10 × weight_kg) + (6.25 × height_cm) - (5 × age) - 161
    """

    def __init__(self, rounding_step: int = CALORIE_ROUNDING_STEP):
        """
        Initialize calculator.

        Args:
            rounding_step: Calorie targets are rounded to a multiple of this (default 50)
        """
        self.rounding_step = rounding_step

    @staticmethod
    def calculate_bmr(
        sex: Sex,
        weight_kg: float,
        height_cm: float,
        age: int,
    ) -> float:
        """
        Calculate Basal Metabolic Rate using Mifflin-St Jeor equation.

        Args:
            sex: Biological sex (male/female)
            weight_kg: Body weight in kilograms
            height_cm: Height in centimeters
            age: Age in years

        Returns:
            BMR in calories per day (unrounded)
        """
        bmr = (10 * weight_kg) + (6.25 * height_cm) - (5 * age)

        if sex == Sex.MALE:
            bmr += 5
        else:
            bmr -= 161

        return bmr

    @staticmethod
    def calculate_tdee(bmr: float, activity_level: ActivityLevel) -> float:
        """Total Daily Energy Expenditure; unknown levels count as moderate."""
        multiplier = ACTIVITY_MULTIPLIERS.get(activity_level, 1.55)
        return bmr * multiplier

    def calculate_target_calories(self, tdee: float, goal: Goal) -> int:
        """Goal-adjusted TDEE rounded to the nearest rounding step."""
        return round_to_nearest(tdee * GOAL_FACTORS.get(goal, 1.0), self.rounding_step)

    @staticmethod
    def macro_grams(calories: int, split: MacroSplit) -> MacroTargets:
        """Convert a percentage split of ``calories`` into grams."""
        return MacroTargets(
            calories=calories,
            carbs=round_half_up(calories * split.carbs / 100 / CALORIES_PER_GRAM_CARBS),
            protein=round_half_up(calories * split.protein / 100 / CALORIES_PER_GRAM_PROTEIN),
            fat=round_half_up(calories * split.fat / 100 / CALORIES_PER_GRAM_FAT),
        )

    def calculate(
        self,
        request: MacroTargetsCalculateRequest,
        today: Optional[date] = None,
    ) -> MacroTargetsCalculation:
        """
        Calculate daily targets.

        BMR comes from Mifflin-St Jeor when sex, weight, height and age (or
        date of birth) are all known; otherwise a sex-based base value is
        used, as the onboarding screen does before metrics are entered.
        """
        age = request.age
        if age is None and request.date_of_birth:
            age = age_from_birth_date(request.date_of_birth, today)

        bmr: Optional[float] = None
        if request.gender and request.weight and request.height and age is not None:
            bmr = self.calculate_bmr(request.gender, request.weight, request.height, age)
            base = bmr
        else:
            base = FALLBACK_BASE_CALORIES.get(request.gender, FALLBACK_BASE_CALORIES[Sex.FEMALE])

        tdee = self.calculate_tdee(base, request.activity_level)
        calories = self.calculate_target_calories(tdee, request.goal)
        split = MACRO_SPLITS[request.goal]

        return MacroTargetsCalculation(
            targets=self.macro_grams(calories, split),
            split=split,
            bmr=round_half_up(bmr) if bmr is not None else None,
            tdee=round_half_up(tdee),
        )

    def apply_to_profile(self, user: User, today: Optional[date] = None) -> User:
        """Copy of ``user`` with the daily calorie and macro targets filled in."""
        calculation = self.calculate(
            MacroTargetsCalculateRequest(
                gender=user.gender,
                date_of_birth=user.date_of_birth,
                height=user.height,
                weight=user.weight,
                activity_level=user.activity_level or ActivityLevel.MODERATE,
                goal=user.goal or Goal.MAINTAIN,
            ),
            today,
        )
        return user.model_copy(
            update={
                "daily_calorie_target": calculation.targets.calories,
                "macro_targets": calculation.targets,
            }
        )


# Singleton instance for convenience
default_calculator = MacroCalculator()


def calculate_macros(
    request: MacroTargetsCalculateRequest,
    today: Optional[date] = None,
) -> MacroTargetsCalculation:
    """Convenience function using default calculator."""
    return default_calculator.calculate(request, today)
