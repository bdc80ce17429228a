"""Tests for the FoodData Central client: retries, backoff and tiered search."""
import json

import httpx
import pytest

from nutriai.errors import ApiError
from nutriai.services.usda import (
    BRANDED,
    FOUNDATION,
    SR_LEGACY,
    SURVEY,
    FoodDataCentralClient,
    backoff_delay_ms,
    detect_brand_intent,
    normalize_query,
)

from conftest import make_food


def search_body(foods, total_hits=None, total_pages=1):
    return {
        "totalHits": len(foods) if total_hits is None else total_hits,
        "currentPage": 1,
        "totalPages": total_pages,
        "foods": foods,
    }


class ScriptedTransport:
    """Answers requests from a list of responses (or exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(handler, sleep, max_attempts=3):
    return FoodDataCentralClient(
        api_key="test-key",
        base_url="https://fdc.test/fdc/v1",
        timeout=5,
        max_attempts=max_attempts,
        transport=httpx.MockTransport(handler),
        sleep=sleep,
    )


class TestBackoff:
    """Tests for the exponential backoff schedule."""

    def test_doubles_per_attempt(self):
        """Test delays start at one second and double."""
        assert backoff_delay_ms(1, 5000) == 1000
        assert backoff_delay_ms(2, 5000) == 2000
        assert backoff_delay_ms(3, 5000) == 4000

    def test_caps_delay(self):
        """Test delays never exceed the cap."""
        assert backoff_delay_ms(4, 5000) == 5000
        assert backoff_delay_ms(5, 10000) == 10000
        assert backoff_delay_ms(10, 10000) == 10000


class TestQueryHelpers:
    """Tests for query normalization and brand intent detection."""

    def test_normalize_query(self):
        """Test case and whitespace are normalized."""
        assert normalize_query("  Chicken   BREAST ") == "chicken breast"

    def test_known_brand(self):
        """Test known brand names signal brand intent."""
        assert detect_brand_intent("big mac mcdonalds") is True
        assert detect_brand_intent("Kraft mac and cheese") is True

    def test_all_caps_word(self):
        """Test an all-caps word longer than two letters signals brand intent."""
        assert detect_brand_intent("KFC chicken") is True
        assert detect_brand_intent("OK chicken") is False

    def test_generic_food(self):
        """Test generic foods have no brand intent."""
        assert detect_brand_intent("chicken breast") is False


class TestSearchRetries:
    """Tests for the retry loop around a single search call."""

    @pytest.mark.asyncio
    async def test_success_sends_expected_request(self, sleeps):
        """Test payload, API key header and parsed result on success."""
        script = ScriptedTransport(
            httpx.Response(200, json=search_body([make_food(1, "Chicken, breast, raw")], 42, 3)),
        )
        client = make_client(script, sleeps)

        result = await client.search("chicken", [SR_LEGACY], limit=20, page=2)

        request = script.requests[0]
        assert request.url.path == "/fdc/v1/foods/search"
        assert request.headers["X-Api-Key"] == "test-key"
        assert json.loads(request.content) == {
            "query": "chicken",
            "pageSize": 20,
            "pageNumber": 2,
            "dataType": [SR_LEGACY],
        }
        assert result.total_hits == 42
        assert result.total_pages == 3
        assert len(result.foods) == 1
        assert sleeps.recorded == []

    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self, sleeps):
        """Test a 429 is retried after one second."""
        script = ScriptedTransport(
            httpx.Response(429, text="slow down"),
            httpx.Response(200, json=search_body([make_food(1, "Rice, white")])),
        )
        client = make_client(script, sleeps)

        result = await client.search("rice", [SR_LEGACY], limit=20)

        assert len(result.foods) == 1
        assert len(script.requests) == 2
        assert sleeps.recorded == [1.0]

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_attempts(self, sleeps):
        """Test 5xx responses are retried three times, without a final sleep."""
        script = ScriptedTransport(
            httpx.Response(500, text="boom"),
            httpx.Response(502, text="bad gateway"),
            httpx.Response(500, text="boom"),
        )
        client = make_client(script, sleeps)

        with pytest.raises(ApiError) as exc_info:
            await client.search("rice", [SR_LEGACY], limit=20)

        assert exc_info.value.stage == "usda-api"
        assert exc_info.value.upstream_status == 500
        assert len(script.requests) == 3
        assert sleeps.recorded == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_auth_failure_not_retried(self, sleeps):
        """Test a 401 is raised immediately."""
        script = ScriptedTransport(httpx.Response(401, text="invalid api key"))
        client = make_client(script, sleeps)

        with pytest.raises(ApiError) as exc_info:
            await client.search("rice", [SR_LEGACY], limit=20)

        assert exc_info.value.upstream_status == 401
        assert len(script.requests) == 1
        assert sleeps.recorded == []

    @pytest.mark.asyncio
    async def test_network_errors_become_503(self, sleeps):
        """Test repeated connection failures surface as a network error."""
        request = httpx.Request("POST", "https://fdc.test/fdc/v1/foods/search")
        script = ScriptedTransport(
            httpx.ConnectError("refused", request=request),
            httpx.ReadTimeout("timed out", request=request),
            httpx.ConnectError("refused", request=request),
        )
        client = make_client(script, sleeps)

        with pytest.raises(ApiError) as exc_info:
            await client.search("rice", [SR_LEGACY], limit=20)

        assert exc_info.value.status_code == 503
        assert exc_info.value.stage == "usda-api-network"
        assert len(script.requests) == 3

    @pytest.mark.asyncio
    async def test_network_error_then_success(self, sleeps):
        """Test a transient connection failure is retried."""
        request = httpx.Request("POST", "https://fdc.test/fdc/v1/foods/search")
        script = ScriptedTransport(
            httpx.ConnectError("refused", request=request),
            httpx.Response(200, json=search_body([])),
        )
        client = make_client(script, sleeps)

        result = await client.search("rice", [SR_LEGACY], limit=20)

        assert result.foods == []
        assert sleeps.recorded == [1.0]


class TieredHandler:
    """Returns foods per requested data type."""

    def __init__(self, by_type, failing=()):
        self.by_type = by_type
        self.failing = set(failing)
        self.requested = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        data_type = json.loads(request.content)["dataType"][0]
        self.requested.append(data_type)
        if data_type in self.failing:
            return httpx.Response(500, text="tier down")
        return httpx.Response(200, json=search_body(self.by_type.get(data_type, [])))


class TestPrioritizedSearch:
    """Tests for tier-by-tier searching."""

    @pytest.mark.asyncio
    async def test_few_results_query_every_tier(self, sleeps):
        """Test sparse results pull in every tier in priority order."""
        handler = TieredHandler({
            SR_LEGACY: [make_food(1, "Quinoa, cooked")],
            SURVEY: [make_food(2, "Quinoa salad", SURVEY)],
            FOUNDATION: [make_food(3, "Quinoa, raw", FOUNDATION)],
            BRANDED: [make_food(4, "QUINOA BLEND", BRANDED)],
        })
        client = make_client(handler, sleeps)

        result = await client.search_prioritized("quinoa", limit=20)

        assert handler.requested == [SR_LEGACY, SURVEY, FOUNDATION, BRANDED]
        assert [f["fdcId"] for f in result.foods] == [1, 2, 3, 4]
        assert result.total_hits == 4
        assert result.total_pages == 1

    @pytest.mark.asyncio
    async def test_enough_results_skip_optional_tiers(self, sleeps):
        """Test plenty of SR Legacy results avoid further calls."""
        legacy = [make_food(i, f"Apples, variety {i}") for i in range(25)]
        handler = TieredHandler({SR_LEGACY: legacy})
        client = make_client(handler, sleeps)

        result = await client.search_prioritized("apple", limit=20)

        assert handler.requested == [SR_LEGACY]
        assert len(result.foods) == 25

    @pytest.mark.asyncio
    async def test_brand_intent_always_searches_branded(self, sleeps):
        """Test brand intent adds the Branded tier even with enough results."""
        legacy = [make_food(i, f"Chicken, part {i}") for i in range(25)]
        handler = TieredHandler({SR_LEGACY: legacy, BRANDED: [make_food(99, "KFC drumstick", BRANDED)]})
        client = make_client(handler, sleeps)

        result = await client.search_prioritized("KFC chicken", limit=20)

        assert handler.requested == [SR_LEGACY, BRANDED]
        assert result.foods[-1]["fdcId"] == 99

    @pytest.mark.asyncio
    async def test_optional_tier_failure_is_skipped(self, sleeps):
        """Test a failing optional tier does not fail the search."""
        handler = TieredHandler(
            {SR_LEGACY: [make_food(1, "Lentils, boiled")], FOUNDATION: [make_food(2, "Lentils", FOUNDATION)]},
            failing=[SURVEY],
        )
        client = make_client(handler, sleeps)

        result = await client.search_prioritized("lentils", limit=20)

        assert [f["fdcId"] for f in result.foods] == [1, 2]
        assert handler.requested.count(SURVEY) == 3

    @pytest.mark.asyncio
    async def test_required_tier_failure_propagates(self, sleeps):
        """Test an SR Legacy auth failure fails the whole search."""
        script = ScriptedTransport(httpx.Response(403, text="forbidden"))
        client = make_client(script, sleeps)

        with pytest.raises(ApiError) as exc_info:
            await client.search_prioritized("lentils", limit=20)

        assert exc_info.value.upstream_status == 403
