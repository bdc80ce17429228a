"""Food search: ranking, de-duplication and progressive disclosure grouping."""
import logging
import math
import re
import time
from typing import Any, Optional, Union

from nutriai.config import get_settings
from nutriai.errors import ApiError
from nutriai.schemas.food_search import (
    FlatFoodSearchResponse,
    FoodResultGroup,
    FoodSearchItem,
    FoodSearchMeta,
    FoodSearchRequest,
    GroupedFoodSearchResponse,
    SearchSuggestion,
)
from nutriai.services.usda import (
    BRANDED,
    FOUNDATION,
    SR_LEGACY,
    SURVEY,
    FoodDataCentralClient,
    detect_brand_intent,
    fdc_client,
    normalize_query,
)
from nutriai.utils.cache import TTLCache
from nutriai.utils.tracing import StageLogger

logger = logging.getLogger(__name__)
settings = get_settings()

FoodSearchResponse = Union[GroupedFoodSearchResponse, FlatFoodSearchResponse]

# FDC nutrient numbers
NUTRIENT_CALORIES = "208"
NUTRIENT_PROTEIN = "203"
NUTRIENT_FAT = "204"
NUTRIENT_CARBS = "205"
NUTRIENT_FIBER = "291"
NUTRIENT_SUGAR = "269"
NUTRIENT_SODIUM = "307"

# Gentle multipliers on top of FDC's own ranking
DATA_TYPE_MULTIPLIERS = {
    FOUNDATION: 1.05,
    SR_LEGACY: 1.02,
    SURVEY: 1.0,
    BRANDED: 0.98,
}
PREFIX_MATCH_MULTIPLIER = 1.05
UNDESIRABLE_PART_MULTIPLIER = 0.80
UNDESIRABLE_PARTS = ["feet", "giblets", "neck", "back", "gizzard", "offal"]

COOKING_INGREDIENT_KEYWORDS = ["broth", "stock", "bouillon", "base", "seasoning", "powder", "mix"]

QUERY_SUGGESTIONS = {
    "chicken": ["chicken breast", "chicken broth", "grilled chicken"],
    "beef": ["ground beef", "beef steak", "beef broth"],
    "fish": ["salmon", "tuna", "cod"],
    "rice": ["brown rice", "white rice", "rice pilaf"],
    "bread": ["whole wheat bread", "white bread", "sourdough"],
    "milk": ["whole milk", "skim milk", "almond milk"],
    "cheese": ["cheddar cheese", "mozzarella", "cottage cheese"],
}
MAX_SUGGESTIONS = 3

# Upstream status -> (client status, user message)
UPSTREAM_ERROR_MAP = {
    400: (400, "Invalid search query. Please check your input and try again."),
    401: (502, "Food database access error. Our team has been notified."),
    403: (502, "Food database access error. Our team has been notified."),
    404: (404, "No foods found matching your search."),
    429: (429, "Food database rate limit exceeded. Please try again in a few minutes."),
    503: (503, "Food database is temporarily unavailable. Please try again later."),
}
DEFAULT_UPSTREAM_ERROR = (502, "Unable to search food database. Please try again later.")
RETRY_AFTER_SECONDS = 60


def map_upstream_error(error: ApiError) -> ApiError:
    """Translate an FDC error into a client-safe error, keeping its stage."""
    status = error.upstream_status or error.status_code
    client_status, message = UPSTREAM_ERROR_MAP.get(status, DEFAULT_UPSTREAM_ERROR)
    extra = {"retryAfter": RETRY_AFTER_SECONDS} if status == 429 else {}
    return ApiError(
        message,
        client_status,
        error.stage,
        error="Food search failed",
        extra=extra,
        upstream_status=status,
    )


def get_nutrient_value(nutrients: list, number: str) -> float:
    """
    Find a nutrient by FDC number in either payload shape.

    Search results use ``{nutrientNumber, value}``; food details use
    ``{nutrient: {number}, amount}``. Missing or non-finite values are 0.
    """
    for entry in nutrients:
        if not isinstance(entry, dict):
            continue

        if str(entry.get("nutrientNumber", "")) == number:
            value = entry.get("value", entry.get("amount"))
            return _finite(value)

        nested = entry.get("nutrient")
        if isinstance(nested, dict) and str(nested.get("number", "")) == number:
            return _finite(entry.get("amount"))

    return 0.0


def _finite(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value) if math.isfinite(value) else 0.0


def calculate_relevance_score(food: dict, query: str, index: int, total: int) -> float:
    """Score from FDC rank position, nudged by data type and description."""
    score = float(total - index)
    description = (food.get("description") or "").lower()

    score *= DATA_TYPE_MULTIPLIERS.get(food.get("dataType"), 1.0)

    if description.startswith(query.lower()):
        score *= PREFIX_MATCH_MULTIPLIER

    if any(part in description for part in UNDESIRABLE_PARTS):
        score *= UNDESIRABLE_PART_MULTIPLIER

    return max(0.0, score)


def transform_food(food: dict, query: str, index: int, total: int) -> FoodSearchItem:
    """Convert a raw FDC food into a search item."""
    nutrients = food.get("foodNutrients")
    if not isinstance(nutrients, list):
        nutrients = []

    serving_size = food.get("servingSize") or 100
    serving_unit = food.get("servingSizeUnit") or "g"
    if "gram" in serving_unit.lower():
        serving_unit = "g"
    elif "ounce" in serving_unit.lower():
        serving_unit = "oz"

    data_type = food.get("dataType") or ""

    return FoodSearchItem(
        id=str(food.get("fdcId", "")),
        name=food.get("description") or "",
        brand=food.get("brandOwner") or food.get("brandName"),
        serving_size=serving_size,
        serving_unit=serving_unit,
        calories=get_nutrient_value(nutrients, NUTRIENT_CALORIES),
        protein=get_nutrient_value(nutrients, NUTRIENT_PROTEIN),
        carbs=get_nutrient_value(nutrients, NUTRIENT_CARBS),
        fat=get_nutrient_value(nutrients, NUTRIENT_FAT),
        fiber=get_nutrient_value(nutrients, NUTRIENT_FIBER) or None,
        sugar=get_nutrient_value(nutrients, NUTRIENT_SUGAR) or None,
        sodium=get_nutrient_value(nutrients, NUTRIENT_SODIUM) or None,
        verified=data_type in (SR_LEGACY, FOUNDATION),
        data_type=data_type,
        relevance_score=calculate_relevance_score(food, query, index, total),
    )


def canonicalize_food_name(name: str) -> str:
    """
    Key that collapses visually similar descriptions.

    "Chicken, breast, raw (USDA)" and "Chicken, breast, roasted" share the
    key "chicken breast"; a one-word first segment keeps the next segment so
    different cuts stay distinct.
    """
    cleaned = re.sub(r"\([^)]*\)", "", name.lower())
    parts = [p.strip() for p in cleaned.split(",") if p.strip()]
    if not parts:
        return ""

    key = parts[0]
    if len(parts) > 1 and len(key.split()) == 1:
        key = f"{key} {parts[1]}"

    return re.sub(r"[^a-z0-9]+", " ", key).strip()


def data_type_priority(data_type: str) -> int:
    if data_type == FOUNDATION:
        return 3
    if data_type == SR_LEGACY:
        return 2
    return 1


def _macro_count(food: FoodSearchItem) -> int:
    return sum(
        1 for value in (food.calories, food.protein, food.carbs, food.fat)
        if value is not None
    )


def _is_better(candidate: FoodSearchItem, existing: FoodSearchItem) -> bool:
    a, b = data_type_priority(candidate.data_type), data_type_priority(existing.data_type)
    if a != b:
        return a > b

    a, b = _macro_count(candidate), _macro_count(existing)
    if a != b:
        return a > b

    return (candidate.relevance_score or 0) > (existing.relevance_score or 0)


def deduplicate_foods(foods: list[FoodSearchItem]) -> list[FoodSearchItem]:
    """Keep the best item per canonical name, in first-seen order."""
    best: dict[str, FoodSearchItem] = {}
    for food in foods:
        key = canonicalize_food_name(food.name)
        existing = best.get(key)
        if existing is None or _is_better(food, existing):
            best[key] = food
    return list(best.values())


def rank_foods(raw_foods: list[dict], query: str) -> list[FoodSearchItem]:
    """Transform, filter, sort and de-duplicate raw FDC foods."""
    total = len(raw_foods)
    foods = [transform_food(food, query, i, total) for i, food in enumerate(raw_foods)]

    # Broths and seasonings often have no calories; keep them only if nothing else matched
    meaningful = [f for f in foods if (f.calories or 0) > 0]
    if meaningful:
        foods = meaningful

    foods.sort(key=lambda f: f.relevance_score or 0, reverse=True)
    return deduplicate_foods(foods)


def categorize_results(foods: list[FoodSearchItem], query: str) -> list[FoodResultGroup]:
    """Build progressive disclosure groups; collapsed groups have no items."""
    groups: list[FoodResultGroup] = []
    has_brand_intent = detect_brand_intent(query)

    if has_brand_intent:
        branded = [f for f in foods if f.data_type == BRANDED][:6]
        if branded:
            groups.append(FoodResultGroup(title="Best Matches", items=branded, max_displayed=6))

        generics = [f for f in foods if f.data_type in (FOUNDATION, SR_LEGACY)][:3]
        if generics:
            groups.append(
                FoodResultGroup(title="Generic Alternatives", items=generics, max_displayed=3)
            )
    else:
        foundation = [f for f in foods if f.data_type == FOUNDATION]
        legacy = [f for f in foods if f.data_type == SR_LEGACY]
        survey = [f for f in foods if f.data_type == SURVEY]
        branded = [f for f in foods if f.data_type == BRANDED]

        best = (foundation[:3] + legacy[:2])[:4]
        if best:
            groups.append(FoodResultGroup(title="Best Matches", items=best, max_displayed=4))

        remaining = foundation[3:] + legacy[2:]
        for title, items in (
            ("More Results", remaining),
            ("Mixed Dishes", survey),
            ("Branded Products", branded),
        ):
            if items:
                groups.append(_collapsed_group(title, len(items)))

    if not has_brand_intent:
        ingredients = [
            f for f in foods
            if any(keyword in f.name.lower() for keyword in COOKING_INGREDIENT_KEYWORDS)
        ]
        if ingredients:
            groups.append(_collapsed_group("Cooking Ingredients", len(ingredients)))

    return groups


def _collapsed_group(title: str, count: int) -> FoodResultGroup:
    return FoodResultGroup(title=f"{title} ({count} items)", items=[], max_displayed=0)


def generate_suggestions(query: str) -> list[SearchSuggestion]:
    """Offer more specific queries for common broad searches."""
    query_lower = query.lower().strip()
    suggestions: list[SearchSuggestion] = []

    for base, variants in QUERY_SUGGESTIONS.items():
        if base in query_lower:
            suggestions.extend(
                SearchSuggestion(
                    display_text=f'Try "{variant}" instead',
                    query=variant,
                    reasoning=f"More specific search for {base}",
                )
                for variant in variants
                if variant != query_lower
            )
            break

    if not suggestions and len(query_lower) > 3:
        suggestions.append(SearchSuggestion(
            display_text=f'Search for "{query_lower} cooked"',
            query=f"{query_lower} cooked",
            reasoning="Find prepared versions",
        ))
        if "raw" not in query_lower:
            suggestions.append(SearchSuggestion(
                display_text=f'Search for "{query_lower} raw"',
                query=f"{query_lower} raw",
                reasoning="Find unprocessed versions",
            ))

    return suggestions[:MAX_SUGGESTIONS]


def cache_key(request: FoodSearchRequest) -> str:
    shape = "grouped" if request.grouped else "flat"
    return f"food-search:{normalize_query(request.query)}:{request.limit}:{request.page}:{shape}"


class FoodSearchService:
    """Runs a search against FDC and shapes the response for the client."""

    def __init__(
        self,
        client: Optional[FoodDataCentralClient] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.client = client or fdc_client
        self.cache = cache if cache is not None else TTLCache(settings.search_cache_ttl_seconds)

    async def search(self, request: FoodSearchRequest, trace: StageLogger) -> FoodSearchResponse:
        """
        Search foods for an authenticated, validated request.

        Raises:
            ApiError: on missing configuration or upstream failure
        """
        started = time.monotonic()

        if not self.client.api_key:
            trace.stage("env-error", "Missing USDA API key", level=logging.ERROR)
            raise ApiError(
                "Food database access is not configured. Please contact support.",
                500,
                "environment",
                error="Service configuration error",
            )

        trace.checkpoint("cache-check")
        key = cache_key(request)
        cached = self.cache.get(key)
        if cached is not None:
            trace.stage("cache-hit", {"cacheKey": key})
            return cached
        trace.stage("cache-miss", {"cacheKey": key})

        trace.checkpoint("usda-api-call")
        try:
            usda = await self.client.search_prioritized(
                request.query, request.limit, request.page, trace
            )
        except ApiError as e:
            trace.stage(
                "usda-api-error",
                {"stage": e.stage, "statusCode": e.status_code, "message": e.message},
                level=logging.WARNING,
            )
            raise map_upstream_error(e) from e

        trace.checkpoint("transform-start")
        try:
            foods = rank_foods(usda.foods, request.query)
        except (TypeError, ValueError, AttributeError) as e:
            trace.stage("transformation-error", {"error": str(e)}, level=logging.ERROR)
            raise ApiError(
                "Failed to process search results. Please try again.",
                500,
                "data-transformation",
                error="Data processing error",
            ) from e
        trace.stage(
            "transformation-success",
            {
                "originalCount": len(usda.foods),
                "transformedCount": len(foods),
                "topScores": [
                    {"name": f.name, "score": f.relevance_score} for f in foods[:5]
                ],
            },
        )

        if request.grouped:
            response = self._grouped_response(request, foods, usda.total_hits, started, trace)
        else:
            response = self._flat_response(request, foods, usda.total_hits, usda.total_pages)

        trace.checkpoint("cache-save")
        self.cache.set(key, response)
        return response

    def _grouped_response(
        self,
        request: FoodSearchRequest,
        foods: list[FoodSearchItem],
        total_hits: int,
        started: float,
        trace: StageLogger,
    ) -> GroupedFoodSearchResponse:
        trace.checkpoint("categorize-start")
        groups = categorize_results(foods, request.query)
        displayed = sum(len(g.items) for g in groups)
        total_remaining = max(0, len(foods) - displayed)

        trace.checkpoint("suggestions")
        suggestions = generate_suggestions(request.query)

        processing_time = round((time.monotonic() - started) * 1000)
        trace.stage(
            "build-response",
            {
                "foodsReturned": len(foods),
                "displayedCount": displayed,
                "totalRemaining": total_remaining,
                "groupCount": len(groups),
                "suggestions": len(suggestions),
                "processingTime": f"{processing_time}ms",
            },
        )

        return GroupedFoodSearchResponse(
            result_groups=groups,
            next_page_token=f"page_{request.page + 1}" if total_remaining > 0 else None,
            total_remaining=total_remaining,
            suggested_queries=suggestions,
            all_foods=foods,
            meta=FoodSearchMeta(
                query=request.query,
                total_results=total_hits,
                current_page=request.page,
                processing_time=processing_time,
                total_available=len(foods),
                initial_displayed=displayed,
            ),
        )

    @staticmethod
    def _flat_response(
        request: FoodSearchRequest,
        foods: list[FoodSearchItem],
        total_hits: int,
        total_pages: int,
    ) -> FlatFoodSearchResponse:
        return FlatFoodSearchResponse(
            foods=foods[:request.limit],
            has_more=request.page < total_pages or len(foods) > request.limit,
            total=total_hits,
            page=request.page,
        )


# Singleton instance
food_search_service = FoodSearchService()
