"""Voice meal transcription through OpenAI Whisper."""
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import unquote

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIStatusError, RateLimitError

from nutriai.config import get_settings
from nutriai.errors import ApiError, configuration_error
from nutriai.schemas.transcription import TranscriptionJSONRequest, TranscriptionResponse
from nutriai.utils.tracing import StageLogger

logger = logging.getLogger(__name__)
settings = get_settings()

ALLOWED_AUDIO_TYPES = ["audio/mp4", "audio/m4a", "audio/mpeg", "audio/wav", "audio/webm"]
DEFAULT_AUDIO_TYPE = "audio/m4a"

_DATA_URL_PREFIX = re.compile(r"^data:audio/[a-zA-Z0-9.+-]+;base64,")

_EXTENSIONS = {
    "audio/mp4": "mp4",
    "audio/m4a": "m4a",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/webm": "webm",
}


@dataclass
class AudioFile:
    """Audio payload ready to forward to Whisper."""
    content: bytes
    mime_type: str
    filename: str = "audio.m4a"

    @property
    def size(self) -> int:
        return len(self.content)


def _invalid(message: str, stage: str = "validation") -> ApiError:
    return ApiError(message, 400, stage, error="Invalid audio request")


def decode_base64_audio(data: str, mime_type: Optional[str]) -> AudioFile:
    """
    Decode base64 audio, tolerating a ``data:audio/...;base64,`` prefix
    and embedded whitespace.
    """
    cleaned = re.sub(r"\s", "", _DATA_URL_PREFIX.sub("", data))
    try:
        content = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise _invalid("Audio must be valid base64", "payload-parsing") from e

    mime = mime_type or DEFAULT_AUDIO_TYPE
    return AudioFile(content=content, mime_type=mime, filename=f"audio.{_EXTENSIONS.get(mime, 'm4a')}")


def owned_storage_path(path: str, user_id: str) -> str:
    """
    Normalize a storage path and check it lies in the user's folder.

    Percent-encoded segments are decoded before checking so ``%2e%2e``
    cannot be used to climb out of the folder.
    """
    object_path = path.lstrip("/")
    segments = unquote(object_path).replace("\\", "/").split("/")
    if any(segment in ("..", ".") for segment in segments):
        raise _invalid("Recording path must not contain relative segments")
    if not user_id or segments[0] != user_id or len(segments) < 2 or not segments[-1]:
        raise _invalid("Recording path must be inside your own folder")
    return object_path


class TranscriptionService:
    """Validates audio and forwards it to the Whisper transcription API."""

    def __init__(
        self,
        client: Optional[Any] = None,
        max_audio_bytes: Optional[int] = None,
        storage_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the service.

        Args:
            client: AsyncOpenAI-compatible client; built from settings when omitted
            max_audio_bytes: Upper bound on decoded audio size
            storage_transport: Optional httpx transport for storage downloads
        """
        self._client = client
        self.max_audio_bytes = max_audio_bytes or settings.max_audio_bytes
        self._storage_transport = storage_transport

    @property
    def client(self) -> Any:
        if self._client is None:
            if not settings.openai_api_key:
                raise configuration_error(
                    "Transcription is not configured. Please contact support."
                )
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.openai_timeout,
                max_retries=settings.openai_max_retries,
            )
        return self._client

    def ensure_configured(self) -> None:
        """Fail fast with a configuration error before reading the upload."""
        _ = self.client

    async def audio_from_json(
        self, body: TranscriptionJSONRequest, user_id: str, trace: StageLogger
    ) -> AudioFile:
        """Resolve a JSON request to audio bytes."""
        if body.storage_path:
            return await self.download_from_storage(
                body.storage_path, user_id, body.mime_type, trace
            )

        if body.audio and body.mime_type:
            trace.stage("base64-audio", {"length": len(body.audio), "mimeType": body.mime_type})
            return decode_base64_audio(body.audio, body.mime_type)

        raise _invalid(
            'Invalid JSON body: expected either "storagePath" or "audio" with "mimeType"',
            "payload-parsing",
        )

    async def download_from_storage(
        self, path: str, user_id: str, mime_type: Optional[str], trace: StageLogger
    ) -> AudioFile:
        """
        Fetch an uploaded recording from the platform's storage bucket.

        The service-role key bypasses storage policies, so only paths inside
        the caller's own folder (``<user_id>/...``) are fetched.

        Raises:
            ApiError: 400 ``validation`` for a path outside the caller's folder
        """
        object_path = owned_storage_path(path, user_id)

        if not (settings.supabase_url and settings.supabase_service_role_key):
            raise configuration_error("Storage is not configured. Please contact support.")

        url = (
            f"{settings.supabase_url.rstrip('/')}/storage/v1/object/"
            f"{settings.audio_storage_bucket}/{object_path}"
        )
        headers = {
            "Authorization": f"Bearer {settings.supabase_service_role_key}",
            "apikey": settings.supabase_service_role_key,
        }
        trace.stage("storage-download", {"path": object_path})

        async with httpx.AsyncClient(
            timeout=settings.supabase_timeout, transport=self._storage_transport
        ) as client:
            try:
                response = await client.get(url, headers=headers)
            except httpx.HTTPError as e:
                raise ApiError(
                    "Unable to fetch the recording. Please try again.",
                    503,
                    "storage",
                    error="Storage unavailable",
                ) from e

        if response.status_code in (400, 404):
            raise ApiError("Recording not found", 404, "storage", error="Recording not found")
        if not response.is_success:
            raise ApiError(
                "Unable to fetch the recording. Please try again.",
                502,
                "storage",
                error="Storage error",
                upstream_status=response.status_code,
            )

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        mime = mime_type or content_type or DEFAULT_AUDIO_TYPE
        filename = object_path.rsplit("/", 1)[-1] or "audio.m4a"
        return AudioFile(content=response.content, mime_type=mime, filename=filename)

    def validate(self, audio: AudioFile) -> None:
        """
        Check size and format before spending an API call.

        Raises:
            ApiError: 400 if the audio is empty, too large or of an unsupported type
        """
        if audio.size == 0:
            raise _invalid("No audio data provided")

        if audio.size > self.max_audio_bytes:
            max_mb = self.max_audio_bytes / 1024 / 1024
            raise _invalid(
                f"Audio file too large. Maximum size is {max_mb:.0f}MB, "
                f"got {audio.size / 1024 / 1024:.2f}MB"
            )

        if audio.mime_type not in ALLOWED_AUDIO_TYPES:
            raise _invalid(
                f"Invalid audio format. Supported formats: {', '.join(ALLOWED_AUDIO_TYPES)}, "
                f"got: {audio.mime_type}"
            )

    async def transcribe(self, audio: AudioFile, trace: StageLogger) -> TranscriptionResponse:
        """
        Transcribe a meal description.

        Raises:
            ApiError: 500 if unconfigured, 429/502/503 on Whisper failures
        """
        client = self.client
        self.validate(audio)
        trace.checkpoint(
            "whisper-request",
            {"size": audio.size, "mimeType": audio.mime_type, "model": settings.whisper_model},
        )

        try:
            result = await client.audio.transcriptions.create(
                model=settings.whisper_model,
                file=(audio.filename, audio.content, audio.mime_type),
                language=settings.whisper_language,
                prompt=settings.whisper_prompt,
                response_format="verbose_json",
            )
        except RateLimitError as e:
            trace.stage("whisper-rate-limited", {"error": str(e)}, level=logging.WARNING)
            raise ApiError(
                "Transcription rate limit exceeded. Please try again in a minute.",
                429,
                "transcription",
                error="Transcription failed",
                extra={"retryAfter": 60},
                upstream_status=429,
            ) from e
        except APIStatusError as e:
            trace.stage(
                "whisper-error",
                {"status": e.status_code, "error": str(e)[:300]},
                level=logging.ERROR,
            )
            raise ApiError(
                "Unable to transcribe audio. Please try again.",
                502,
                "transcription",
                error="Transcription failed",
                upstream_status=e.status_code,
            ) from e
        except APIConnectionError as e:
            trace.stage("whisper-unreachable", {"error": str(e)}, level=logging.ERROR)
            raise ApiError(
                "Transcription service is temporarily unavailable. Please try again later.",
                503,
                "transcription",
                error="Transcription failed",
            ) from e

        text = getattr(result, "text", None) or ""
        duration = getattr(result, "duration", None)
        trace.stage("whisper-success", {"characters": len(text), "duration": duration})

        return TranscriptionResponse(
            transcription=text,
            confidence=1.0,
            duration=duration,
        )


# Singleton instance
transcription_service = TranscriptionService()
