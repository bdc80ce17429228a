"""Shared fixtures: fake upstream clients, tokens and an API test client."""
import logging
import time
from types import SimpleNamespace

import jwt
import pytest
from fastapi.testclient import TestClient

from nutriai.errors import ApiError
from nutriai.services.usda import USDASearchResult
from nutriai.utils.tracing import StageLogger

JWT_SECRET = "test-jwt-secret-with-at-least-32-bytes"
USER_ID = "user-123"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFDCClient:
    """Stands in for FoodDataCentralClient in service and API tests."""

    def __init__(self, foods=None, total_hits=None, total_pages=1, error=None, api_key="test-key"):
        self.api_key = api_key
        self.foods = foods or []
        self.total_hits = len(self.foods) if total_hits is None else total_hits
        self.total_pages = total_pages
        self.error = error
        self.calls = []

    async def search_prioritized(self, query, limit, page=1, trace=None):
        self.calls.append({"query": query, "limit": limit, "page": page})
        if self.error:
            raise self.error
        return USDASearchResult(
            total_hits=self.total_hits,
            current_page=page,
            total_pages=self.total_pages,
            foods=[dict(food) for food in self.foods],
        )


class FakeWhisper:
    """Minimal AsyncOpenAI stand-in exposing ``audio.transcriptions.create``."""

    def __init__(self, text="two scrambled eggs and a slice of toast", duration=3.4, error=None):
        self.calls = []
        self.text = text
        self.duration = duration
        self.error = error
        self.audio = SimpleNamespace(transcriptions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text, duration=self.duration)


class FakeAnthropic:
    """AsyncAnthropic stand-in returning a fixed text reply."""

    def __init__(self, reply="", error=None):
        self.calls = []
        self.reply = reply
        self.error = error
        self.messages = SimpleNamespace(create=self._create)

    async def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.reply)])


class FakeOpenAIChat:
    """AsyncOpenAI stand-in exposing ``chat.completions.create``."""

    def __init__(self, reply=""):
        self.calls = []
        self.reply = reply
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_food(fdc_id, description, data_type="SR Legacy", calories=100.0, protein=5.0,
              carbs=10.0, fat=2.0, **extra):
    """Raw FDC search result entry."""
    food = {
        "fdcId": fdc_id,
        "description": description,
        "dataType": data_type,
        "foodNutrients": [
            {"nutrientNumber": "208", "value": calories},
            {"nutrientNumber": "203", "value": protein},
            {"nutrientNumber": "205", "value": carbs},
            {"nutrientNumber": "204", "value": fat},
        ],
    }
    food.update(extra)
    return food


def make_token(sub=USER_ID, expires_in=3600, secret=JWT_SECRET, audience="authenticated"):
    payload = {
        "sub": sub,
        "email": "user@example.com",
        "role": "authenticated",
        "aud": audience,
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def upstream_error(status):
    return ApiError(f"USDA API error: {status}", status, "usda-api", upstream_status=status)


@pytest.fixture
def trace():
    return StageLogger(logging.getLogger("tests"), "test", "req_test")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    """Records delays requested by the retry loop instead of sleeping."""
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    fake_sleep.recorded = recorded
    return fake_sleep


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def app():
    from nutriai.main import app as fastapi_app

    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def auth_service():
    from nutriai.services.auth_service import AuthService

    return AuthService(
        supabase_url="https://project.supabase.co",
        service_role_key="service-role-key",
        jwt_secret=JWT_SECRET,
    )


@pytest.fixture
def client(app, auth_service):
    from nutriai.utils.auth import get_auth_service

    app.dependency_overrides[get_auth_service] = lambda: auth_service
    return TestClient(app, raise_server_exceptions=False)
