"""USDA FoodData Central API client for food search."""
import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import httpx

from nutriai.config import get_settings
from nutriai.errors import ApiError
from nutriai.utils.tracing import StageLogger

logger = logging.getLogger(__name__)
settings = get_settings()

# FDC data types, in the order users expect them
FOUNDATION = "Foundation"
SR_LEGACY = "SR Legacy"
SURVEY = "Survey (FNDDS)"
BRANDED = "Branded"

# Backoff caps in milliseconds
RATE_LIMIT_BACKOFF_CAP_MS = 10_000
RETRY_BACKOFF_CAP_MS = 5_000

# Known brand names that signal the user wants a branded product
BRAND_KEYWORDS = [
    "mcdonald", "mcdonalds", "burger king", "kfc", "taco bell", "subway",
    "starbucks", "dunkin", "pizza hut", "dominos", "papa johns",
    "tyson", "perdue", "foster farms", "oscar mayer", "hebrew national",
    "kraft", "heinz", "campbells", "progresso", "hunts",
    "lays", "doritos", "cheetos", "pringles", "ruffles",
    "coca cola", "pepsi", "sprite", "fanta", "dr pepper",
    "nestle", "hershey", "mars", "snickers", "kit kat",
    "kellogg", "general mills", "quaker", "post", "nabisco",
]


def normalize_query(query: str) -> str:
    """Lower-case, trim and collapse whitespace."""
    return " ".join(query.lower().split())


def detect_brand_intent(query: str) -> bool:
    """
    Detect whether a query is looking for a branded product.

    True when the query mentions a known brand, or contains a word of
    more than two letters written entirely in upper case (e.g. "KFC").
    """
    normalized = normalize_query(query)
    if any(brand in normalized for brand in BRAND_KEYWORDS):
        return True

    for word in query.split():
        if len(word) > 2 and word.isascii() and word.isalpha() and word.isupper():
            return True

    return False


def backoff_delay_ms(attempt: int, cap_ms: int) -> int:
    """Delay after a failed ``attempt`` (1-indexed): min(1000 * 2^(attempt-1), cap)."""
    return min(1000 * 2 ** (attempt - 1), cap_ms)


@dataclass
class USDASearchResult:
    """Search results as returned by FDC (raw food dicts)."""
    total_hits: int = 0
    current_page: int = 1
    total_pages: int = 0
    foods: list[dict] = field(default_factory=list)


class FoodDataCentralClient:
    """Client for the USDA FoodData Central search API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the client.

        Args:
            api_key: FDC API key (defaults to USDA_API_KEY)
            base_url: API root URL
            timeout: Request timeout in seconds
            max_attempts: Attempts per request, including the first
            transport: Optional httpx transport (used by tests)
            sleep: Coroutine used to wait between attempts
        """
        self.api_key = api_key if api_key is not None else settings.usda_api_key
        self.base_url = (base_url or settings.usda_api_url).rstrip("/")
        self.timeout = timeout or settings.usda_timeout
        self.max_attempts = max_attempts or settings.usda_max_attempts
        self._transport = transport
        self._sleep = sleep

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def search(
        self,
        query: str,
        data_types: list[str],
        limit: int,
        page: int = 1,
        trace: Optional[StageLogger] = None,
    ) -> USDASearchResult:
        """
        Search foods of the given data types, retrying transient failures.

        Rate limits (429) and server errors (5xx) are retried with exponential
        backoff; other 4xx responses, including auth failures, are raised
        immediately.

        Raises:
            ApiError: stage ``usda-api`` with the upstream status, or
                ``usda-api-network`` (503) when the API cannot be reached.
        """
        url = f"{self.base_url}/foods/search"
        payload = {
            "query": query,
            "pageSize": limit,
            "pageNumber": max(page, 1),
            "dataType": data_types,
        }
        headers = {
            "Content-Type": "application/json",
            "X-Api-Key": self.api_key or "",
        }
        log = trace or StageLogger(logger, "food-search", "-")
        log.stage("usda-request", {"url": url, "payload": payload})

        last_error: Optional[Exception] = None

        async with self._client() as client:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    response = await client.post(url, json=payload, headers=headers)
                except httpx.HTTPError as e:
                    last_error = e
                    log.stage(
                        "usda-attempt-failed",
                        {"attempt": attempt, "error": str(e), "dataTypes": data_types},
                        level=logging.WARNING,
                    )
                    await self._backoff(attempt, RETRY_BACKOFF_CAP_MS, log)
                    continue

                if response.is_success:
                    try:
                        data = response.json()
                    except ValueError as e:
                        last_error = e
                        log.stage(
                            "usda-invalid-json",
                            {"attempt": attempt, "error": str(e)},
                            level=logging.WARNING,
                        )
                        await self._backoff(attempt, RETRY_BACKOFF_CAP_MS, log)
                        continue

                    result = self._parse_search(data)
                    log.stage(
                        "usda-success",
                        {
                            "attempt": attempt,
                            "totalHits": result.total_hits,
                            "foodsReturned": len(result.foods),
                            "dataTypes": data_types,
                        },
                    )
                    return result

                error_text = response.text[:500]
                log.stage(
                    "usda-error",
                    {
                        "attempt": attempt,
                        "status": response.status_code,
                        "error": error_text,
                        "dataTypes": data_types,
                    },
                    level=logging.WARNING,
                )
                status_error = ApiError(
                    f"USDA API error: {error_text}",
                    response.status_code,
                    "usda-api",
                    upstream_status=response.status_code,
                )

                if response.status_code == 429:
                    last_error = status_error
                    await self._backoff(attempt, RATE_LIMIT_BACKOFF_CAP_MS, log)
                    continue
                if response.status_code >= 500:
                    last_error = status_error
                    await self._backoff(attempt, RETRY_BACKOFF_CAP_MS, log)
                    continue

                raise status_error

        if isinstance(last_error, ApiError):
            raise last_error

        raise ApiError(
            "Failed to connect to USDA API after retries",
            503,
            "usda-api-network",
        ) from last_error

    async def _backoff(self, attempt: int, cap_ms: int, log: StageLogger) -> None:
        if attempt >= self.max_attempts:
            return
        delay = backoff_delay_ms(attempt, cap_ms)
        log.stage("usda-retry", {"attempt": attempt, "delay": delay})
        await self._sleep(delay / 1000)

    async def search_prioritized(
        self,
        query: str,
        limit: int,
        page: int = 1,
        trace: Optional[StageLogger] = None,
    ) -> USDASearchResult:
        """
        Fetch results tier by tier, stopping early once there is enough data.

        1. SR Legacy: core generic foods (required)
        2. Survey (FNDDS): mixed dishes, when fewer than half the target
        3. Foundation: fallback when fewer than 10 results
        4. Branded: on brand intent or when fewer than 10 results

        Only the first tier's errors propagate; later tiers are best-effort.
        """
        log = trace or StageLogger(logger, "food-search", "-")
        has_brand_intent = detect_brand_intent(query)
        log.stage("brand-intent-detection", {"query": query, "hasBrandIntent": has_brand_intent})

        target = min(limit * 2, 200)
        combined = USDASearchResult(current_page=page)

        legacy = await self.search(query, [SR_LEGACY], min(target, 100), page, log)
        self._merge(combined, legacy)
        log.stage("sr-legacy-results", {"found": len(legacy.foods), "totalSoFar": len(combined.foods)})

        if len(combined.foods) < target / 2:
            await self._optional_tier(
                combined, query, [SURVEY],
                min(target - len(combined.foods), 100), page, log, "survey",
            )

        if len(combined.foods) < 10:
            await self._optional_tier(
                combined, query, [FOUNDATION],
                min(target - len(combined.foods), 50), page, log, "foundation",
            )

        if has_brand_intent or len(combined.foods) < 10:
            await self._optional_tier(
                combined, query, [BRANDED],
                min(target if has_brand_intent else 20, 100), page, log, "branded",
            )
        else:
            log.stage("branded-skipped", "no brand intent, sufficient results")

        combined.total_pages = math.ceil(combined.total_hits / limit) if limit else 0

        distribution: dict[str, int] = {}
        for food in combined.foods:
            data_type = food.get("dataType", "unknown")
            distribution[data_type] = distribution.get(data_type, 0) + 1
        log.stage(
            "prioritized-search-complete",
            {
                "totalFoods": len(combined.foods),
                "totalHits": combined.total_hits,
                "hasBrandIntent": has_brand_intent,
                "dataTypeDistribution": distribution,
            },
        )
        return combined

    async def _optional_tier(
        self,
        combined: USDASearchResult,
        query: str,
        data_types: list[str],
        limit: int,
        page: int,
        log: StageLogger,
        name: str,
    ) -> None:
        try:
            result = await self.search(query, data_types, limit, page, log)
        except ApiError as e:
            log.stage(f"{name}-optional-error", {"error": str(e)}, level=logging.WARNING)
            return

        self._merge(combined, result)
        log.stage(f"{name}-results", {"found": len(result.foods), "totalSoFar": len(combined.foods)})

    @staticmethod
    def _merge(combined: USDASearchResult, result: USDASearchResult) -> None:
        combined.foods.extend(result.foods)
        combined.total_hits += result.total_hits

    @staticmethod
    def _parse_search(data: Any) -> USDASearchResult:
        if not isinstance(data, dict):
            return USDASearchResult()

        foods = data.get("foods")
        return USDASearchResult(
            total_hits=int(data.get("totalHits") or 0),
            current_page=int(data.get("currentPage") or 1),
            total_pages=int(data.get("totalPages") or 0),
            foods=[f for f in foods if isinstance(f, dict)] if isinstance(foods, list) else [],
        )


# Singleton instance
fdc_client = FoodDataCentralClient()
