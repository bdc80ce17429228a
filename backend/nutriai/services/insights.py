"""Weekly insights from a user's daily totals."""
import datetime
import logging
import math
from typing import Dict, Iterable, List, Optional

from nutriai.schemas.insights import (
    Insight,
    InsightData,
    InsightsResponse,
    InsightType,
    Sentiment,
    WeeklyData,
)
from nutriai.schemas.nutrition import DailyLog
from nutriai.services.daily_log import NUTRIENTS
from nutriai.services.macro_calculator import round_half_up

logger = logging.getLogger(__name__)

PERIOD_DAYS = 7
MAX_INSIGHTS = 3

# Smallest week-over-week change worth reporting, in percent
TREND_THRESHOLD = 5.0

# Coefficient of variation bounds for steady and erratic intake
CONSISTENT_CV = 0.15
INCONSISTENT_CV = 0.35

NEGATIVE_WEIGHT = 1.5
CALORIES_WEIGHT = 1.1

INSUFFICIENT_DATA_MESSAGE = "Keep logging for more days to unlock your personal insights!"


def week_logs(logs: Iterable[DailyLog], end_date: datetime.date) -> List[DailyLog]:
    """Logs dated within the seven days ending on ``end_date``, oldest first; one per date."""
    start_date = end_date - datetime.timedelta(days=PERIOD_DAYS - 1)
    by_date: Dict[datetime.date, DailyLog] = {}
    for log in logs:
        if start_date <= log.date <= end_date:
            by_date[log.date] = log
    return [by_date[day] for day in sorted(by_date)]


def calculate_trend(values: List[float]) -> float:
    """
    Percent change from the first three days to the last three.

    The middle day is left out. Returns 0 unless there are exactly seven
    values or when the first three average to zero.
    """
    if len(values) != PERIOD_DAYS:
        return 0.0
    first = sum(values[0:3]) / 3
    second = sum(values[4:7]) / 3
    if first == 0:
        return 0.0
    return (second - first) / first * 100


def coefficient_of_variation(values: List[float]) -> float:
    """Population standard deviation over the mean; 0 for a zero mean."""
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    if mean == 0:
        return 0.0
    variance = sum((value - mean) ** 2 for value in values) / len(values)
    return math.sqrt(variance) / mean


def relevance_score(sentiment: Sentiment, metric: str, magnitude: float) -> float:
    """Bigger changes rank higher; problems and calories get a boost."""
    score = abs(magnitude)
    if sentiment == Sentiment.NEGATIVE:
        score *= NEGATIVE_WEIGHT
    if metric == "calories":
        score *= CALORIES_WEIGHT
    return score


def trend_text(metric: str, sentiment: Sentiment, change: float) -> tuple:
    percent = abs(round_half_up(change))
    if metric == "calories":
        if sentiment == Sentiment.POSITIVE:
            return (
                "Calorie Reduction",
                f"Great job! Your calorie intake decreased by {percent}% this week.",
            )
        return (
            "Calorie Increase",
            f"Your calorie intake increased by {percent}% this week. Consider portion control.",
        )
    name = metric.capitalize()
    if sentiment == Sentiment.POSITIVE:
        return (
            f"{name} Increase",
            f"Your {metric} intake increased by {percent}% this week. Keep it up!",
        )
    return (
        f"{name} Decrease",
        f"Your {metric} intake decreased by {percent}% this week. Try to maintain your goals.",
    )


def consistency_text(metric: str, sentiment: Sentiment) -> tuple:
    name = metric.capitalize()
    if sentiment == Sentiment.POSITIVE:
        return (
            f"Consistent {name}",
            f"Excellent! You've been very consistent with your {metric} intake this week.",
        )
    return (
        f"Inconsistent {name}",
        f"Your {metric} intake has been inconsistent. Try to maintain steadier daily amounts.",
    )


def trend_insight(metric: str, values: List[float]) -> Optional[Insight]:
    change = calculate_trend(values)
    if abs(change) <= TREND_THRESHOLD:
        return None

    # Eating more is a problem only for calories
    rising_is_good = metric != "calories"
    sentiment = Sentiment.POSITIVE if (change > 0) == rising_is_good else Sentiment.NEGATIVE
    title, description = trend_text(metric, sentiment, change)
    return Insight(
        id=f"{metric}_trend_{sentiment.value}".lower(),
        type=InsightType.TREND,
        sentiment=sentiment,
        metric=metric,
        title=title,
        description=description,
        change_value=change,
        relevance_score=relevance_score(sentiment, metric, change),
        data=InsightData(change_percent=change, daily_values=values, period_days=PERIOD_DAYS),
    )


def consistency_insight(metric: str, values: List[float]) -> Optional[Insight]:
    cv = coefficient_of_variation(values)
    if cv < CONSISTENT_CV:
        sentiment = Sentiment.POSITIVE
    elif cv > INCONSISTENT_CV:
        sentiment = Sentiment.NEGATIVE
    else:
        return None

    title, description = consistency_text(metric, sentiment)
    return Insight(
        id=f"{metric}_consistency_{sentiment.value}".lower(),
        type=InsightType.CONSISTENCY,
        sentiment=sentiment,
        metric=metric,
        title=title,
        description=description,
        coefficient_variation=cv,
        relevance_score=relevance_score(sentiment, metric, cv * 100),
        data=InsightData(coefficient_variation=cv, daily_values=values, period_days=PERIOD_DAYS),
    )


def generate_insights(
    logs: Iterable[DailyLog],
    end_date: Optional[datetime.date] = None,
) -> InsightsResponse:
    """
    Find the most relevant patterns in the last seven days of totals.

    Each nutrient may yield a trend insight (first three days against the
    last three, reported past a 5% change) and a consistency insight
    (steady below a 0.15 coefficient of variation, erratic above 0.35).
    The three highest-scoring insights are returned. Fewer than seven
    logged days yields ``INSUFFICIENT_DATA`` with the number still needed.
    """
    end_date = end_date or datetime.date.today()
    week = week_logs(logs, end_date)

    if len(week) < PERIOD_DAYS:
        return InsightsResponse(
            status="INSUFFICIENT_DATA",
            message=INSUFFICIENT_DATA_MESSAGE,
            days_logged=len(week),
            days_remaining=PERIOD_DAYS - len(week),
        )

    metrics = {
        metric: [getattr(log, f"total_{metric}") for log in week]
        for metric in NUTRIENTS
    }

    candidates: List[Insight] = []
    for metric, values in metrics.items():
        insight = trend_insight(metric, values)
        if insight:
            candidates.append(insight)
    for metric, values in metrics.items():
        insight = consistency_insight(metric, values)
        if insight:
            candidates.append(insight)

    candidates.sort(key=lambda insight: insight.relevance_score, reverse=True)
    logger.debug(f"{len(candidates)} insight candidates for week ending {end_date}")

    return InsightsResponse(
        status="SUCCESS",
        insights=candidates[:MAX_INSIGHTS],
        weekly_data=WeeklyData(**metrics),
    )
