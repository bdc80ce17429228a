"""Tests for daily log aggregation."""
from datetime import date, datetime, timezone

from nutriai.schemas.nutrition import MealEntry, MealType
from nutriai.schemas.user import MacroTargets
from nutriai.services.daily_log import (
    build_daily_log,
    nutrient_progress,
    summarize_day,
)

DAY = date(2024, 5, 1)


def entry(entry_id, meal_type, logged_at, calories, protein, carbs, fat):
    return MealEntry(
        id=entry_id,
        user_id="user-123",
        food_item_id=f"food-{entry_id}",
        meal_type=meal_type,
        quantity=1,
        unit="serving",
        calories=calories,
        protein=protein,
        carbs=carbs,
        fat=fat,
        logged_at=logged_at,
    )


def day_entries():
    # Unsorted, with one entry from the previous day
    return [
        entry("lunch", MealType.LUNCH, datetime(2024, 5, 1, 12, 30), 500, 35, 45, 18),
        entry("late-snack", MealType.SNACK, datetime(2024, 4, 30, 22, 0), 200, 4, 25, 9),
        entry("breakfast", MealType.BREAKFAST, datetime(2024, 5, 1, 8, 0), 300, 20, 30, 10),
    ]


class TestBuildDailyLog:
    """Tests for building the daily log."""

    def test_totals(self):
        """Test totals cover only the requested day."""
        log = build_daily_log("user-123", DAY, day_entries())

        assert log.total_calories == 800
        assert log.total_protein == 55
        assert log.total_carbs == 75
        assert log.total_fat == 28

    def test_entries_ordered_and_filtered(self):
        """Test entries from other days are dropped and the rest sorted by time."""
        log = build_daily_log("user-123", DAY, day_entries())

        assert [e.id for e in log.meal_entries] == ["breakfast", "lunch"]

    def test_empty_day(self):
        """Test a day without entries has zero totals."""
        log = build_daily_log("user-123", DAY, [])

        assert log.total_calories == 0
        assert log.meal_entries == []


class TestProgress:
    """Tests for progress toward targets."""

    def test_under_target(self):
        """Test remaining and percent below the target."""
        progress = nutrient_progress(800, 2000)

        assert progress.remaining == 1200
        assert progress.percent == 40.0

    def test_over_target(self):
        """Test remaining never goes negative."""
        progress = nutrient_progress(28, 20)

        assert progress.remaining == 0
        assert progress.percent == 140.0

    def test_zero_target(self):
        """Test a zero target reports zero percent."""
        assert nutrient_progress(50, 0).percent == 0


class TestSummarizeDay:
    """Tests for the full daily summary."""

    def test_meal_totals(self):
        """Test every meal type is reported, including empty ones."""
        summary = summarize_day("user-123", DAY, day_entries())

        assert set(summary.meals) == set(MealType)
        assert summary.meals[MealType.LUNCH].calories == 500
        assert summary.meals[MealType.BREAKFAST].entries == 1
        assert summary.meals[MealType.SNACK].entries == 0
        assert summary.meals[MealType.DINNER].calories == 0

    def test_without_targets(self):
        """Test progress is omitted when no targets are given."""
        assert summarize_day("user-123", DAY, day_entries()).progress is None

    def test_with_targets(self):
        """Test progress is reported for each macro."""
        targets = MacroTargets(calories=2000, protein=150, carbs=200, fat=20)

        summary = summarize_day("user-123", DAY, day_entries(), targets)

        assert summary.progress["calories"].remaining == 1200
        assert summary.progress["calories"].percent == 40.0
        assert summary.progress["protein"].remaining == 95
        assert summary.progress["fat"].remaining == 0
        assert summary.progress["fat"].percent == 140.0


class TestTimestamps:
    """Tests for entries logged with and without a UTC offset."""

    def test_naive_timestamp_is_utc(self):
        """Test a timestamp without an offset is read as UTC."""
        logged = entry("e1", MealType.LUNCH, datetime(2024, 5, 1, 12, 0), 100, 1, 1, 1)

        assert logged.logged_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_mixed_offsets_are_ordered(self):
        """Test entries with and without offsets sort by instant."""
        entries = [
            entry("lunch", MealType.LUNCH, "2024-05-01T12:00:00Z", 500, 35, 45, 18),
            entry("breakfast", MealType.BREAKFAST, "2024-05-01T08:00:00", 300, 20, 30, 10),
            entry("dinner", MealType.DINNER, "2024-05-01T19:00:00-04:00", 700, 40, 60, 25),
        ]

        log = build_daily_log("user-123", DAY, entries)

        assert [e.id for e in log.meal_entries] == ["breakfast", "lunch", "dinner"]
        assert log.total_calories == 1500

    def test_local_date_is_kept(self):
        """Test an entry counts toward the date of its own offset."""
        late = entry("late", MealType.SNACK, "2024-05-01T23:30:00-04:00", 150, 2, 20, 7)

        assert build_daily_log("user-123", DAY, [late]).total_calories == 150
