"""Weekly insight schemas."""
import enum
import datetime
from typing import List, Literal, Optional

from pydantic import Field

from nutriai.schemas.base import CamelModel
from nutriai.schemas.nutrition import DailyLog


class InsightType(str, enum.Enum):
    TREND = "TREND"
    CONSISTENCY = "CONSISTENCY"


class Sentiment(str, enum.Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


class InsightsRequest(CamelModel):
    """
    Daily logs to look for patterns in.

    Only the seven days ending on ``endDate`` (default today) are used;
    entries inside each log are not needed, only its totals.
    """
    daily_logs: List[DailyLog] = Field(default_factory=list)
    end_date: Optional[datetime.date] = None


class InsightData(CamelModel):
    change_percent: Optional[float] = None
    coefficient_variation: Optional[float] = None
    daily_values: List[float]
    period_days: int


class Insight(CamelModel):
    """One observation about the week, e.g. a protein increase."""
    id: str
    type: InsightType
    sentiment: Sentiment
    metric: str
    title: str
    description: str
    change_value: Optional[float] = None
    coefficient_variation: Optional[float] = None
    relevance_score: float
    data: InsightData


class WeeklyData(CamelModel):
    """Daily totals for the week, oldest first."""
    calories: List[float]
    protein: List[float]
    carbs: List[float]
    fat: List[float]


class InsightsResponse(CamelModel):
    """Up to three insights, or how many more days must be logged first."""
    status: Literal["SUCCESS", "INSUFFICIENT_DATA"]
    insights: Optional[List[Insight]] = None
    weekly_data: Optional[WeeklyData] = None
    message: Optional[str] = None
    days_logged: Optional[int] = None
    days_remaining: Optional[int] = None
