"""Tests for the macro calculator service."""
from datetime import date

import pytest

from nutriai.schemas.user import (
    ActivityLevel,
    Goal,
    MacroSplit,
    MacroTargetsCalculateRequest,
    Sex,
    User,
)
from nutriai.services.macro_calculator import (
    ACTIVITY_MULTIPLIERS,
    MacroCalculator,
    age_from_birth_date,
    calculate_macros,
    round_to_nearest,
)


def request(**overrides):
    values = {
        "gender": Sex.MALE,
        "age": 30,
        "height": 180,
        "weight": 80,
        "activity_level": ActivityLevel.MODERATE,
        "goal": Goal.MAINTAIN,
    }
    values.update(overrides)
    return MacroTargetsCalculateRequest(**values)


class TestBMRCalculation:
    """Tests for BMR calculation using Mifflin-St Jeor equation."""

    def test_bmr_male(self):
        """Test BMR calculation for male."""
        bmr = MacroCalculator.calculate_bmr(Sex.MALE, weight_kg=80, height_cm=180, age=30)
        # BMR = (10 × 80) + (6.25 × 180) - (5 × 30) + 5 = 800 + 1125 - 150 + 5 = 1780
        assert bmr == 1780

    def test_bmr_female(self):
        """Test BMR calculation for female."""
        bmr = MacroCalculator.calculate_bmr(Sex.FEMALE, weight_kg=65, height_cm=165, age=28)
        # BMR = (10 × 65) + (6.25 × 165) - (5 × 28) - 161 = 650 + 1031.25 - 140 - 161
        assert bmr == pytest.approx(1380.25)


class TestTDEECalculation:
    """Tests for TDEE calculation."""

    def test_tdee_multipliers(self):
        """Test TDEE with different activity levels."""
        for level, multiplier in ACTIVITY_MULTIPLIERS.items():
            assert MacroCalculator.calculate_tdee(1800, level) == pytest.approx(1800 * multiplier)

    def test_known_multipliers(self):
        """Test the onboarding multipliers."""
        assert ACTIVITY_MULTIPLIERS[ActivityLevel.SEDENTARY] == 1.2
        assert ACTIVITY_MULTIPLIERS[ActivityLevel.LIGHT] == 1.375
        assert ACTIVITY_MULTIPLIERS[ActivityLevel.MODERATE] == 1.55
        assert ACTIVITY_MULTIPLIERS[ActivityLevel.ACTIVE] == 1.725
        assert ACTIVITY_MULTIPLIERS[ActivityLevel.VERY_ACTIVE] == 1.9


class TestGoalCalories:
    """Tests for goal-based calorie calculation."""

    def test_rounds_to_nearest_50(self):
        """Test targets are rounded to the nearest 50, halves rounding up."""
        assert round_to_nearest(2759, 50) == 2750
        assert round_to_nearest(2776, 50) == 2800
        assert round_to_nearest(2725, 50) == 2750

    def test_maintenance_calories(self):
        """Test maintenance keeps TDEE."""
        calculator = MacroCalculator()
        assert calculator.calculate_target_calories(2759, Goal.MAINTAIN) == 2750

    def test_lose_calories(self):
        """Test losing weight applies a 20% deficit."""
        calculator = MacroCalculator()
        # 2759 * 0.8 = 2207.2
        assert calculator.calculate_target_calories(2759, Goal.LOSE) == 2200

    def test_gain_calories(self):
        """Test gaining weight applies a 15% surplus."""
        calculator = MacroCalculator()
        # 2759 * 1.15 = 3172.85
        assert calculator.calculate_target_calories(2759, Goal.GAIN) == 3150


class TestMacroDistribution:
    """Tests for macro nutrient distribution."""

    def test_complete_macro_calculation(self):
        """Test complete macro calculation returns all values."""
        result = calculate_macros(request())

        assert result.bmr == 1780
        assert result.tdee == 2759
        assert result.targets.calories == 2750
        # 45/30/25 split: carbs 2750*.45/4, protein 2750*.30/4, fat 2750*.25/9
        assert result.targets.carbs == 309
        assert result.targets.protein == 206
        assert result.targets.fat == 76
        assert result.split == MacroSplit(carbs=45, protein=30, fat=25)

    def test_lose_split(self):
        """Test losing weight shifts calories to protein."""
        result = calculate_macros(request(goal=Goal.LOSE))

        assert result.split == MacroSplit(carbs=40, protein=40, fat=20)
        assert result.targets.calories == 2200
        assert result.targets.carbs == 220
        assert result.targets.protein == 220
        assert result.targets.fat == 49

    def test_gain_split(self):
        """Test gaining weight shifts calories to carbs."""
        result = calculate_macros(request(goal=Goal.GAIN))

        assert result.split == MacroSplit(carbs=50, protein=30, fat=20)
        assert result.targets.calories == 3150
        assert result.targets.carbs == 394
        assert result.targets.protein == 236
        assert result.targets.fat == 70

    def test_female_sedentary(self):
        """Test a sedentary female profile."""
        result = calculate_macros(
            request(gender=Sex.FEMALE, weight=65, height=165, age=28, activity_level=ActivityLevel.SEDENTARY)
        )

        assert result.bmr == 1380
        assert result.targets.calories == 1650

    def test_very_active(self):
        """Test very active multiplier."""
        result = calculate_macros(request(activity_level=ActivityLevel.VERY_ACTIVE))
        # 1780 * 1.9 = 3382
        assert result.targets.calories == 3400

    @pytest.mark.parametrize("goal", list(Goal))
    def test_macros_account_for_calories(self, goal):
        """Test macro grams add back up to roughly the calorie target."""
        result = calculate_macros(request(goal=goal))
        targets = result.targets

        total = targets.carbs * 4 + targets.protein * 4 + targets.fat * 9
        assert abs(total - targets.calories) <= 10


class TestIncompleteProfile:
    """Tests for profiles missing body metrics."""

    def test_fallback_base_male(self):
        """Test a base of 1800 kcal for males without metrics."""
        result = calculate_macros(MacroTargetsCalculateRequest(gender=Sex.MALE))

        assert result.bmr is None
        # 1800 * 1.55 = 2790
        assert result.targets.calories == 2800

    def test_fallback_base_unknown_sex(self):
        """Test a base of 1600 kcal when sex is unknown."""
        result = calculate_macros(MacroTargetsCalculateRequest())
        # 1600 * 1.55 = 2480
        assert result.targets.calories == 2500

    def test_age_from_date_of_birth(self):
        """Test date of birth is used when age is missing."""
        calculator = MacroCalculator()
        result = calculator.calculate(
            request(age=None, date_of_birth=date(1994, 1, 1)),
            today=date(2024, 6, 1),
        )

        assert result.bmr == 1780


class TestAge:
    """Tests for age calculation."""

    def test_before_birthday(self):
        """Test age before this year's birthday."""
        assert age_from_birth_date(date(1994, 6, 15), today=date(2024, 6, 14)) == 29

    def test_on_birthday(self):
        """Test age on the birthday."""
        assert age_from_birth_date(date(1994, 6, 15), today=date(2024, 6, 15)) == 30


class TestApplyToProfile:
    """Tests for filling in a profile's targets."""

    def test_targets_filled(self):
        """Test the profile gets calorie and macro targets from its metrics."""
        user = User(
            id="user-123",
            email="user@example.com",
            date_of_birth=date(1994, 1, 1),
            height=180,
            weight=80,
            gender=Sex.MALE,
            activity_level=ActivityLevel.MODERATE,
            goal=Goal.LOSE,
        )

        profile = MacroCalculator().apply_to_profile(user, today=date(2024, 6, 1))

        assert profile.daily_calorie_target == 2200
        assert profile.macro_targets.protein == 220
        assert profile.email == "user@example.com"
        assert user.daily_calorie_target is None

    def test_defaults_without_answers(self):
        """Test a bare profile uses moderate activity and maintenance."""
        profile = MacroCalculator().apply_to_profile(User(id="user-123", email="user@example.com"))

        assert profile.daily_calorie_target == 2500
