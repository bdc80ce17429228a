"""AI service for meal photo, description and correction analysis."""
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import ValidationError

from nutriai.config import get_settings
from nutriai.errors import ApiError, configuration_error
from nutriai.schemas.meal_analysis import (
    ChatMessage,
    DescribedMealAnalysis,
    MealAnalysisRequest,
    MealAnalysisResponse,
)
from nutriai.utils.tracing import StageLogger

logger = logging.getLogger(__name__)
settings = get_settings()

# Vision APIs reject images over 20MB; base64 adds ~33% on top of the raw size
MAX_IMAGE_DATA_URI_LENGTH = 20_000_000

TEXT_MAX_TOKENS = 2000
TEXT_TEMPERATURE = 0.2

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")
_DATA_URI = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,(.*)$", re.DOTALL)

NUTRITION_ANALYSIS_PROMPT = """You are an expert nutrition analysis AI. Analyze the provided meal image and provide detailed nutrition information.

Your response MUST be a single, valid JSON object and nothing else. Do not include any explanatory text, markdown formatting, or comments before or after the JSON object.

The JSON object must conform to this exact structure:
{
    "foods": [
        {
            "name": "Food item name",
            "quantity": "Estimated portion size (e.g., '1 cup', '150g', '1 medium')",
            "nutrition": {
                "calories": number,
                "protein": number,
                "carbs": number,
                "fat": number,
                "fiber": number,
                "sugar": number,
                "sodium": number
            },
            "confidence": number between 0 and 1
        }
    ],
    "totalNutrition": {
        "calories": number,
        "protein": number,
        "carbs": number,
        "fat": number,
        "fiber": number,
        "sugar": number,
        "sodium": number
    },
    "confidence": number between 0 and 1,
    "notes": "Any relevant observations about the meal"
}

Guidelines:
- Be as accurate as possible with portion estimates
- Include all visible food items
- Provide nutrition values in grams, except calories (kcal) and sodium (mg)
- Consider cooking methods that affect nutrition
- Only include foods you can clearly identify
- If unsure, use lower confidence scores"""

NUTRITION_ASSISTANT_PROMPT = """You are a nutrition analysis assistant with extensive knowledge of nutrition data from the USDA, restaurant chains and branded products. Always reply with valid JSON in the exact structure requested. When unsure of exact values, use conservative estimates based on similar foods."""

MEAL_DESCRIPTION_PROMPT = """Analyze the following meal description and return detailed nutrition information.

Guidelines:
- Break complex meals into their components: "bagel with cream cheese" is a bagel and cream cheese
- Use natural units (1 burger, 1 slice, 2 tablespoon, 1 cup)
- Use the published values for branded and restaurant items such as a Big Mac
- Use standard USDA-style portions for generic foods
- Be conservative with portion sizes if unclear
- Give nutrients in grams, except calories (kcal) and sodium (mg)

MEAL: "{description}"

Reply with a single JSON object in this exact structure and nothing else:
{{
  "foods": [
    {{"name": "Food name", "quantity": 1, "unit": "natural unit", "calories": 0, "protein": 0, "carbs": 0, "fat": 0, "fiber": 0, "sugar": 0, "sodium": 0}}
  ],
  "confidence": number between 0 and 1,
  "notes": "Assumptions made about portions or preparation"
}}

Example for "bagel with strawberry cream cheese":
{{
  "foods": [
    {{"name": "Plain Bagel", "quantity": 1, "unit": "bagel", "calories": 289, "protein": 11, "carbs": 56, "fat": 2, "fiber": 2, "sugar": 5, "sodium": 561}},
    {{"name": "Strawberry Cream Cheese", "quantity": 2, "unit": "tablespoon", "calories": 100, "protein": 2, "carbs": 3, "fat": 9, "fiber": 0, "sugar": 3, "sodium": 85}}
  ],
  "confidence": 0.9,
  "notes": "Assumed 2 tablespoons of cream cheese on 1 plain bagel"
}}"""

REFINEMENT_PROMPT = """You are an expert nutrition analysis assistant. The conversation holds your earlier meal analyses as JSON and the user's corrections to them. Reply with a new, complete analysis of the meal that applies every correction, the last user message being the most recent.

Rules:
- Reply with a single JSON object in the same structure as your earlier analyses and nothing else
- Replace corrected items instead of adding duplicates ("the shake was blueberry, not strawberry" replaces the shake)
- Keep every item the user did not mention
- Use natural units and break new complex items into their components
- For branded or restaurant items, keep their published nutrition values instead of recalculating from ingredients"""

# Anthropic conversations must open with a user turn
REFINEMENT_OPENING = "Here is the meal analysis to correct."


def build_prompt(voice_transcription: Optional[str] = None) -> str:
    """Analysis prompt, with the user's spoken description appended when given."""
    prompt = NUTRITION_ANALYSIS_PROMPT
    if voice_transcription:
        prompt += (
            f'\n\nADDITIONAL CONTEXT FROM USER:\n"{voice_transcription}"\n\n'
            "Use this voice context to better identify foods and portion sizes in the image."
        )
    return prompt


def _response_error(message: str) -> ApiError:
    return ApiError(message, 502, "ai-response", error="Failed to parse meal analysis")


def _clamp_confidence(value: Any, default: float = 0.5) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return min(max(float(value), 0.0), 1.0)


def _load_json_object(content: str) -> Dict[str, Any]:
    json_content = content.strip()
    match = _FENCED_JSON.search(json_content)
    if match:
        json_content = match.group(1)

    try:
        data = json.loads(json_content)
    except json.JSONDecodeError as e:
        raise _response_error("AI response was not valid JSON") from e

    if not isinstance(data, dict):
        raise _response_error("AI response was not a JSON object")
    if not isinstance(data.get("foods"), list):
        raise _response_error("Invalid response format: missing foods array")
    return data


def parse_meal_analysis(content: str) -> MealAnalysisResponse:
    """
    Parse the model's reply into a meal analysis.

    The reply may wrap its JSON in a markdown code fence. A missing
    ``foods`` array or ``totalNutrition`` object is rejected; a missing
    confidence defaults to 0.5.

    Raises:
        ApiError: 502 ``ai-response`` if the reply is not a usable analysis
    """
    data = _load_json_object(content)
    if not isinstance(data.get("totalNutrition"), dict):
        raise _response_error("Invalid response format: missing totalNutrition")

    data["confidence"] = _clamp_confidence(data.get("confidence"))
    for food in data["foods"]:
        if isinstance(food, dict):
            food["confidence"] = _clamp_confidence(food.get("confidence"))

    try:
        return MealAnalysisResponse.model_validate(data)
    except ValidationError as e:
        raise _response_error(f"Invalid response format: {e.error_count()} invalid fields") from e


def parse_described_meal(content: str) -> DescribedMealAnalysis:
    """
    Parse the model's reply to a meal description or correction.

    Totals are summed from the foods, to one decimal, whatever totals the
    reply itself carries.

    Raises:
        ApiError: 502 ``ai-response`` if the reply is not a usable analysis
    """
    data = _load_json_object(content)
    try:
        analysis = DescribedMealAnalysis.model_validate(
            {
                "foods": data["foods"],
                "confidence": _clamp_confidence(data.get("confidence")),
                "notes": data.get("notes") or None,
            }
        )
    except ValidationError as e:
        raise _response_error(f"Invalid response format: {e.error_count()} invalid fields") from e

    foods = analysis.foods
    return analysis.model_copy(
        update={
            "total_calories": round(sum(f.calories for f in foods), 1),
            "total_protein": round(sum(f.protein for f in foods), 1),
            "total_carbs": round(sum(f.carbs for f in foods), 1),
            "total_fat": round(sum(f.fat for f in foods), 1),
        }
    )


def analysis_message(analysis: DescribedMealAnalysis) -> ChatMessage:
    """The analysis as the assistant turn of a correction conversation."""
    content = json.dumps(analysis.model_dump(by_alias=True, exclude_none=True))
    return ChatMessage(role="assistant", content=content)


def _anthropic_text(response: Any) -> str:
    content_blocks = response.content or []
    return "\n".join(
        block.text for block in content_blocks
        if block.type == "text" and block.text
    ).strip()


def _openai_text(response: Any) -> str:
    if not response.choices:
        return ""
    return (response.choices[0].message.content or "").strip()


class AIService:
    """AI service for meal analysis from photos and typed descriptions."""

    def __init__(
        self,
        openai_client: Optional[Any] = None,
        anthropic_client: Optional[Any] = None,
        provider: Optional[str] = None,
    ):
        """
        Initialize the AI service.

        Clients are built from settings when not injected and an API key is
        configured for them.
        """
        self.openai_client = openai_client or (
            AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.openai_timeout,
                max_retries=settings.openai_max_retries,
            ) if settings.openai_api_key else None
        )
        self.anthropic_client = anthropic_client or (
            AsyncAnthropic(
                api_key=settings.anthropic_api_key,
            ) if settings.anthropic_api_key else None
        )
        self.preferred_provider = provider or settings.ai_provider

    def _select_provider(self) -> Optional[str]:
        """Select the active AI provider based on config and available keys."""
        preferred = self.preferred_provider.lower().strip()

        if preferred == "anthropic" and self.anthropic_client:
            return "anthropic"
        if preferred == "openai" and self.openai_client:
            return "openai"

        if self.anthropic_client:
            return "anthropic"
        if self.openai_client:
            return "openai"

        return None

    def _require_provider(self) -> str:
        provider = self._select_provider()
        if not provider:
            raise configuration_error(
                "Meal analysis is not configured. Please contact support.",
                stage="ai-config",
            )
        return provider

    @staticmethod
    def resolve_image(payload: MealAnalysisRequest) -> str:
        """
        Pick the image to analyze: the URL if given, else the data URI.

        Raises:
            ApiError: 400 ``validation`` for a missing, malformed or oversized image
        """
        if payload.image_url:
            return payload.image_url

        image = payload.image_base64
        if not image:
            raise ApiError(
                "Either imageUrl or imageBase64 must be provided",
                400,
                "validation",
                error="No image provided",
            )
        if not image.startswith("data:image/"):
            raise ApiError(
                "Invalid imageBase64 format. Must be a data URI starting with data:image/",
                400,
                "validation",
                error="Invalid image",
            )
        if len(image) > MAX_IMAGE_DATA_URI_LENGTH:
            raise ApiError(
                "Image too large. Please use a smaller image (under 15MB).",
                400,
                "validation",
                error="Invalid image",
                extra={"imageSizeMB": round(len(image) / 1048576)},
            )
        return image

    async def _generate(self, provider: str, completion, trace: StageLogger) -> str:
        """
        Await a provider call and return its non-empty text.

        Raises:
            ApiError: 502 ``ai-analysis`` on provider errors, 502 ``ai-response``
                on an empty reply
        """
        try:
            content = await completion
        except (anthropic.APIError, openai.APIError) as e:
            status = getattr(e, "status_code", None)
            trace.stage(
                "ai-error",
                {"provider": provider, "status": status, "error": str(e)[:300]},
                level=logging.ERROR,
            )
            raise ApiError(
                "Unable to analyze the meal. Please try again.",
                502,
                "ai-analysis",
                error="Meal analysis failed",
                upstream_status=status,
            ) from e

        if not content:
            raise _response_error("AI returned empty content")

        trace.checkpoint("ai-response", {"contentLength": len(content)})
        return content

    @staticmethod
    def _parse(parser, content: str, trace: StageLogger):
        try:
            return parser(content)
        except ApiError:
            trace.stage("ai-parse-error", {"contentSnippet": content[:200]}, level=logging.WARNING)
            raise

    async def analyze_meal(
        self,
        payload: MealAnalysisRequest,
        trace: StageLogger,
    ) -> MealAnalysisResponse:
        """
        Identify the foods in a meal photo and estimate their nutrition.

        Args:
            payload: Image and optional voice transcription
            trace: Request-scoped stage logger

        Returns:
            MealAnalysisResponse with per-food and total nutrition

        Raises:
            ApiError: 400 ``validation``, 500 ``ai-config``, 502 ``ai-analysis``
                or 502 ``ai-response``
        """
        image = self.resolve_image(payload)
        provider = self._require_provider()

        prompt = build_prompt(payload.voice_transcription)
        model = settings.claude_vision_model if provider == "anthropic" else settings.openai_vision_model
        trace.checkpoint(
            "ai-request",
            {"provider": provider, "model": model, "hasVoice": bool(payload.voice_transcription)},
        )

        if provider == "anthropic":
            completion = self._analyze_with_anthropic(prompt, image)
        else:
            completion = self._analyze_with_openai(prompt, image)
        content = await self._generate(provider, completion, trace)
        analysis = self._parse(parse_meal_analysis, content, trace)

        trace.stage(
            "analysis",
            {
                "foodCount": len(analysis.foods),
                "confidence": analysis.confidence,
                "totalCalories": analysis.total_nutrition.calories,
            },
        )
        return analysis

    async def analyze_description(
        self,
        description: str,
        trace: StageLogger,
    ) -> DescribedMealAnalysis:
        """
        Break a typed meal description into foods with nutrition.

        Raises:
            ApiError: 500 ``ai-config``, 502 ``ai-analysis`` or 502 ``ai-response``
        """
        provider = self._require_provider()
        trace.checkpoint(
            "ai-request",
            {"provider": provider, "model": self._text_model(provider), "descriptionLength": len(description)},
        )

        messages = [{"role": "user", "content": MEAL_DESCRIPTION_PROMPT.format(description=description)}]
        completion = self._complete_text(provider, NUTRITION_ASSISTANT_PROMPT, messages)
        content = await self._generate(provider, completion, trace)
        analysis = self._parse(parse_described_meal, content, trace)

        trace.stage(
            "analysis",
            {
                "foodCount": len(analysis.foods),
                "confidence": analysis.confidence,
                "totalCalories": analysis.total_calories,
            },
        )
        return analysis

    async def refine_analysis(
        self,
        history: List[ChatMessage],
        correction: str,
        trace: StageLogger,
    ) -> Tuple[DescribedMealAnalysis, List[ChatMessage]]:
        """
        Apply a user's correction to the latest analysis in ``history``.

        Returns:
            The corrected analysis and the history extended with the
            correction and the new analysis

        Raises:
            ApiError: 500 ``ai-config``, 502 ``ai-analysis`` or 502 ``ai-response``
        """
        provider = self._require_provider()
        new_history = list(history) + [ChatMessage(role="user", content=correction)]
        trace.checkpoint(
            "ai-request",
            {"provider": provider, "model": self._text_model(provider), "turns": len(new_history)},
        )

        messages = [message.model_dump() for message in new_history]
        completion = self._complete_text(provider, REFINEMENT_PROMPT, messages)
        content = await self._generate(provider, completion, trace)
        analysis = self._parse(parse_described_meal, content, trace)

        new_history.append(analysis_message(analysis))
        trace.stage(
            "refinement",
            {"foodCount": len(analysis.foods), "totalCalories": analysis.total_calories},
        )
        return analysis, new_history

    @staticmethod
    def _text_model(provider: str) -> str:
        return settings.claude_text_model if provider == "anthropic" else settings.openai_text_model

    async def _complete_text(self, provider: str, system: str, messages: List[Dict[str, str]]) -> str:
        if provider == "anthropic":
            if messages and messages[0]["role"] != "user":
                messages = [{"role": "user", "content": REFINEMENT_OPENING}] + messages
            response = await self.anthropic_client.messages.create(
                model=settings.claude_text_model,
                system=system,
                messages=messages,
                max_tokens=TEXT_MAX_TOKENS,
                temperature=TEXT_TEMPERATURE,
            )
            return _anthropic_text(response)

        response = await self.openai_client.chat.completions.create(
            model=settings.openai_text_model,
            messages=[{"role": "system", "content": system}] + messages,
            max_tokens=TEXT_MAX_TOKENS,
            temperature=TEXT_TEMPERATURE,
        )
        return _openai_text(response)

    async def _analyze_with_anthropic(self, prompt: str, image: str) -> str:
        match = _DATA_URI.match(image)
        if match:
            source = {"type": "base64", "media_type": match.group(1), "data": match.group(2)}
        else:
            source = {"type": "url", "url": image}

        response = await self.anthropic_client.messages.create(
            model=settings.claude_vision_model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "image", "source": source},
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
            max_tokens=settings.claude_max_tokens,
            temperature=0.1,
        )
        return _anthropic_text(response)

    async def _analyze_with_openai(self, prompt: str, image: str) -> str:
        response = await self.openai_client.chat.completions.create(
            model=settings.openai_vision_model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {"url": image, "detail": "high"},
                        },
                    ],
                }
            ],
            max_tokens=1500,
            temperature=0.1,
        )
        return _openai_text(response)


# Singleton instance
ai_service = AIService()
