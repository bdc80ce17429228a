"""Authentication dependencies."""
import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from nutriai.errors import ApiError, configuration_error
from nutriai.schemas.auth import AuthenticatedUser
from nutriai.services.auth_service import AuthService, AuthServiceError, auth_service
from nutriai.utils.tracing import get_request_id

logger = logging.getLogger(__name__)

# Bearer token security scheme
bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service() -> AuthService:
    return auth_service


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: AuthService = Depends(get_auth_service),
) -> AuthenticatedUser:
    """
    Dependency to get the current authenticated user.

    Validates the platform access token from the Authorization header.

    Raises:
        ApiError: 500 if auth is not configured, 401 if the token is missing
            or invalid, 500 if the auth platform fails.
    """
    request_id = get_request_id(request)

    if not service.is_configured:
        logger.error(f"[{request_id}] Supabase URL or service role key missing")
        raise configuration_error(
            "The service is not properly configured. Please contact support."
        )

    if not credentials:
        raise ApiError(
            "Please provide a valid authentication token",
            401,
            "authorization",
            error="Authentication required",
        )

    try:
        user = await service.verify_token(credentials.credentials)
    except AuthServiceError as e:
        logger.error(f"[{request_id}] Auth verification failed: {e}")
        raise ApiError(
            "Unable to verify your identity. Please try again.",
            500,
            "authentication",
            error="Authentication service error",
        ) from e

    if not user:
        raise ApiError(
            "Your session has expired. Please log in again.",
            401,
            "authentication",
            error="Authentication failed",
        )

    request.state.user_id = user.id
    return user
