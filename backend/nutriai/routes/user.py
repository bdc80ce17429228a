"""User target routes."""
from fastapi import APIRouter, Depends

from nutriai.errors import ApiError
from nutriai.schemas.auth import AuthenticatedUser
from nutriai.schemas.user import MacroTargetsCalculateRequest, MacroTargetsCalculation, User
from nutriai.services.macro_calculator import MacroCalculator, default_calculator
from nutriai.utils.auth import get_current_user

router = APIRouter(prefix="/targets", tags=["User"])


def get_macro_calculator() -> MacroCalculator:
    return default_calculator


@router.post("/macros", response_model=MacroTargetsCalculation)
async def calculate_macro_targets(
    request: MacroTargetsCalculateRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    calculator: MacroCalculator = Depends(get_macro_calculator),
):
    """
    Calculate daily calorie and macro targets from onboarding answers.

    Uses Mifflin-St Jeor equation for BMR calculation when sex, height,
    weight and age are all provided.
    """
    return calculator.calculate(request)


@router.post("/profile", response_model=User, response_model_exclude_none=True)
async def complete_profile(
    profile: User,
    current_user: AuthenticatedUser = Depends(get_current_user),
    calculator: MacroCalculator = Depends(get_macro_calculator),
):
    """
    Fill in the targets of the signed-in user's profile at the end of onboarding.

    Returns the profile with ``dailyCalorieTarget`` and ``macroTargets`` set,
    ready to be saved by the client.
    """
    if profile.id != current_user.id:
        raise ApiError(
            "The profile must belong to the signed-in user",
            400,
            "validation",
            error="Invalid profile",
        )
    return calculator.apply_to_profile(profile)
