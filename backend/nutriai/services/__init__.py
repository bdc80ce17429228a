"""Backend services."""
from nutriai.services.macro_calculator import MacroCalculator
from nutriai.services.usda import FoodDataCentralClient
from nutriai.services.food_search import FoodSearchService
from nutriai.services.transcription import TranscriptionService
from nutriai.services.ai_service import AIService
from nutriai.services.auth_service import AuthService
from nutriai.services.insights import generate_insights

__all__ = [
    "MacroCalculator",
    "FoodDataCentralClient",
    "FoodSearchService",
    "TranscriptionService",
    "AIService",
    "AuthService",
    "generate_insights",
]
