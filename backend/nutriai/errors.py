"""Stage-tagged API errors returned to the mobile client."""
from typing import Any, Mapping, Optional


class ApiError(Exception):
    """Raised anywhere in a request pipeline to produce a client-facing error.

    Attributes:
        message: human-readable message safe to show to the user
        status_code: HTTP status returned to the client
        stage: pipeline stage where the failure happened, used for log correlation
        error: short error title (defaults to the message)
        extra: optional mapping merged into the response body (e.g. retryAfter)
        upstream_status: status code reported by the upstream API, if any
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        stage: str,
        error: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
        upstream_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.stage = stage
        self.error = error or message
        self.extra = dict(extra or {})
        self.upstream_status = upstream_status

    def to_dict(self, request_id: str) -> dict:
        payload: dict[str, Any] = {
            "stage": self.stage,
            "error": self.error,
            "message": self.message,
            "requestId": request_id,
        }
        payload.update(self.extra)
        return payload

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


def configuration_error(message: str, stage: str = "environment") -> ApiError:
    """Service misconfiguration (missing keys); never retried by the client."""
    return ApiError(message, 500, stage, error="Service configuration error")
