"""Tests for access token verification."""
import httpx
import pytest

from nutriai.services.auth_service import AuthService, AuthServiceError

from conftest import USER_ID, make_token


def remote_service(handler):
    """Service without a JWT secret, so tokens are checked with the platform."""
    service = AuthService(
        supabase_url="https://project.supabase.co/",
        service_role_key="service-role-key",
        transport=httpx.MockTransport(handler),
    )
    service.jwt_secret = None
    return service


class TestLocalVerification:
    """Tests for verifying tokens with the project JWT secret."""

    @pytest.mark.asyncio
    async def test_valid_token(self, auth_service):
        """Test a valid token resolves to its user."""
        user = await auth_service.verify_token(make_token())

        assert user.id == USER_ID
        assert user.email == "user@example.com"
        assert user.role == "authenticated"

    @pytest.mark.asyncio
    async def test_expired_token(self, auth_service):
        """Test expired tokens are rejected."""
        assert await auth_service.verify_token(make_token(expires_in=-60)) is None

    @pytest.mark.asyncio
    async def test_wrong_secret(self, auth_service):
        """Test tokens signed with another secret are rejected."""
        token = make_token(secret="another-secret-that-is-also-32-bytes-long")
        assert await auth_service.verify_token(token) is None

    @pytest.mark.asyncio
    async def test_wrong_audience(self, auth_service):
        """Test tokens for another audience are rejected."""
        assert await auth_service.verify_token(make_token(audience="anon")) is None

    @pytest.mark.asyncio
    async def test_garbage_token(self, auth_service):
        """Test malformed tokens are rejected."""
        assert await auth_service.verify_token("not-a-jwt") is None

    @pytest.mark.asyncio
    async def test_token_without_subject(self, auth_service):
        """Test tokens without a subject are rejected."""
        assert await auth_service.verify_token(make_token(sub="")) is None


class TestRemoteVerification:
    """Tests for asking the auth platform about a token."""

    @pytest.mark.asyncio
    async def test_valid_token(self):
        """Test the platform's user is returned and headers are sent."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": "abc", "email": "a@b.co", "role": "authenticated"})

        user = await remote_service(handler).verify_token("token-1")

        assert user.id == "abc"
        assert str(seen[0].url) == "https://project.supabase.co/auth/v1/user"
        assert seen[0].headers["Authorization"] == "Bearer token-1"
        assert seen[0].headers["apikey"] == "service-role-key"

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        """Test a 401 from the platform means an invalid token."""
        service = remote_service(lambda request: httpx.Response(401, json={"msg": "invalid JWT"}))
        assert await service.verify_token("token-1") is None

    @pytest.mark.asyncio
    async def test_platform_error(self):
        """Test platform failures raise rather than reject the user."""
        service = remote_service(lambda request: httpx.Response(500, text="oops"))

        with pytest.raises(AuthServiceError):
            await service.verify_token("token-1")

    @pytest.mark.asyncio
    async def test_platform_unreachable(self):
        """Test network failures raise AuthServiceError."""
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(AuthServiceError):
            await remote_service(handler).verify_token("token-1")


class TestConfiguration:
    """Tests for configuration checks."""

    def test_configured(self, auth_service):
        """Test URL and service role key make the service usable."""
        assert auth_service.is_configured is True

    def test_not_configured(self, auth_service):
        """Test a missing service role key is reported."""
        auth_service.service_role_key = None
        assert auth_service.is_configured is False
