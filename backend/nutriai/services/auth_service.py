"""Verification of Supabase Auth access tokens."""
import logging
from typing import Optional

import httpx
import jwt

from nutriai.config import get_settings
from nutriai.schemas.auth import AuthenticatedUser

logger = logging.getLogger(__name__)
settings = get_settings()


class AuthServiceError(Exception):
    """The auth platform could not be reached or answered unexpectedly."""


class AuthService:
    """
    Validates bearer tokens issued by the managed auth platform.

    When the project's JWT secret is configured, tokens are verified locally.
    Otherwise the platform's ``/auth/v1/user`` endpoint is asked, which is
    what the platform SDK's ``auth.getUser()`` does.
    """

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        service_role_key: Optional[str] = None,
        jwt_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize auth service.

        Args:
            supabase_url: Project URL (defaults to SUPABASE_URL)
            service_role_key: Service role key sent as the ``apikey`` header
            jwt_secret: Project JWT secret for local verification
            transport: Optional httpx transport (used by tests)
        """
        self.supabase_url = (supabase_url or settings.supabase_url or "").rstrip("/")
        self.service_role_key = service_role_key or settings.supabase_service_role_key
        self.jwt_secret = jwt_secret or settings.supabase_jwt_secret
        self.audience = settings.supabase_jwt_audience
        self.timeout = settings.supabase_timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.supabase_url and self.service_role_key)

    async def verify_token(self, token: str) -> Optional[AuthenticatedUser]:
        """
        Resolve a bearer token to its user.

        Returns:
            The authenticated user, or None if the token is invalid or expired

        Raises:
            AuthServiceError: If the auth platform fails to answer
        """
        if self.jwt_secret:
            return self._decode_token(token)
        return await self._fetch_user(token)

    def _decode_token(self, token: str) -> Optional[AuthenticatedUser]:
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=self.audience,
            )
        except jwt.ExpiredSignatureError:
            logger.info("Access token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.info(f"Invalid access token: {e}")
            return None

        if not payload.get("sub"):
            return None

        return AuthenticatedUser(
            id=payload["sub"],
            email=payload.get("email"),
            role=payload.get("role"),
        )

    async def _fetch_user(self, token: str) -> Optional[AuthenticatedUser]:
        url = f"{self.supabase_url}/auth/v1/user"
        headers = {
            "Authorization": f"Bearer {token}",
            "apikey": self.service_role_key or "",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(url, headers=headers)
            except httpx.HTTPError as e:
                raise AuthServiceError(f"Auth platform unreachable: {e}") from e

        if response.status_code in (401, 403):
            return None
        if not response.is_success:
            raise AuthServiceError(f"Auth platform returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise AuthServiceError("Auth platform returned invalid JSON") from e

        if not isinstance(data, dict) or not data.get("id"):
            return None

        return AuthenticatedUser(
            id=data["id"],
            email=data.get("email"),
            role=data.get("role"),
        )


# Singleton instance
auth_service = AuthService()
