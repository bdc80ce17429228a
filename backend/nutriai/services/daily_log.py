"""Daily nutrition totals and progress toward targets."""
import datetime
import logging
from typing import Iterable, Optional

from nutriai.schemas.nutrition import (
    DailyLog,
    DailyLogSummary,
    MealEntry,
    MealTotals,
    MealType,
    NutrientProgress,
)
from nutriai.schemas.user import MacroTargets

logger = logging.getLogger(__name__)

NUTRIENTS = ("calories", "protein", "carbs", "fat")


def build_daily_log(
    user_id: str,
    day: datetime.date,
    entries: Iterable[MealEntry],
) -> DailyLog:
    """
    Aggregate meal entries into a daily log.

    Entries logged on other days are skipped; the rest are ordered by
    ``logged_at``.
    """
    todays = sorted(
        (entry for entry in entries if entry.logged_at.date() == day),
        key=lambda entry: entry.logged_at,
    )
    return DailyLog(
        user_id=user_id,
        date=day,
        total_calories=round(sum(e.calories for e in todays), 1),
        total_protein=round(sum(e.protein for e in todays), 1),
        total_carbs=round(sum(e.carbs for e in todays), 1),
        total_fat=round(sum(e.fat for e in todays), 1),
        meal_entries=todays,
    )


def meal_totals(log: DailyLog) -> dict[MealType, MealTotals]:
    """Totals per meal type; every meal type is present."""
    totals = {meal_type: MealTotals() for meal_type in MealType}
    for entry in log.meal_entries:
        meal = totals[entry.meal_type]
        meal.calories = round(meal.calories + entry.calories, 1)
        meal.protein = round(meal.protein + entry.protein, 1)
        meal.carbs = round(meal.carbs + entry.carbs, 1)
        meal.fat = round(meal.fat + entry.fat, 1)
        meal.entries += 1
    return totals


def nutrient_progress(consumed: float, target: float) -> NutrientProgress:
    """Remaining amount (floored at 0) and percent of target consumed."""
    percent = round(consumed / target * 100, 1) if target > 0 else 0.0
    return NutrientProgress(
        consumed=consumed,
        target=target,
        remaining=round(max(target - consumed, 0), 1),
        percent=percent,
    )


def progress_toward(log: DailyLog, targets: MacroTargets) -> dict[str, NutrientProgress]:
    consumed = {
        "calories": log.total_calories,
        "protein": log.total_protein,
        "carbs": log.total_carbs,
        "fat": log.total_fat,
    }
    return {
        nutrient: nutrient_progress(consumed[nutrient], getattr(targets, nutrient))
        for nutrient in NUTRIENTS
    }


def summarize_day(
    user_id: str,
    day: datetime.date,
    entries: Iterable[MealEntry],
    targets: Optional[MacroTargets] = None,
) -> DailyLogSummary:
    """Build the daily log with per-meal totals and optional target progress."""
    log = build_daily_log(user_id, day, entries)
    logger.debug(f"Daily log for {user_id} on {day}: {len(log.meal_entries)} entries")
    return DailyLogSummary(
        log=log,
        meals=meal_totals(log),
        progress=progress_toward(log, targets) if targets else None,
    )
