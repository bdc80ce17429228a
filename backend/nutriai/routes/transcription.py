"""Audio transcription function."""
import json
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from nutriai.errors import ApiError
from nutriai.schemas.auth import AuthenticatedUser
from nutriai.schemas.transcription import TranscriptionJSONRequest, TranscriptionResponse
from nutriai.services.transcription import (
    DEFAULT_AUDIO_TYPE,
    AudioFile,
    TranscriptionService,
    transcription_service,
)
from nutriai.utils.auth import get_current_user
from nutriai.utils.tracing import StageLogger, get_request_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transcribe-audio", tags=["Transcription"])


def get_transcription_service() -> TranscriptionService:
    return transcription_service


def _payload_error(message: str) -> ApiError:
    return ApiError(message, 400, "payload-parsing", error="Invalid audio request")


async def _read_multipart(request: Request) -> AudioFile:
    form = await request.form()
    upload = form.get("audio")
    if not isinstance(upload, UploadFile):
        raise _payload_error("No audio file provided in form data")

    content = await upload.read()
    return AudioFile(
        content=content,
        mime_type=upload.content_type or DEFAULT_AUDIO_TYPE,
        filename=upload.filename or "audio.m4a",
    )


async def _read_json(request: Request) -> TranscriptionJSONRequest:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise _payload_error("Request body must be valid JSON") from e

    if not isinstance(body, dict):
        raise _payload_error("Request body must be a JSON object")

    try:
        return TranscriptionJSONRequest.model_validate(body)
    except ValidationError as e:
        raise _payload_error("Invalid JSON body: audio, mimeType and storagePath must be strings") from e


@router.post("", response_model=TranscriptionResponse)
async def transcribe_audio(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    service: TranscriptionService = Depends(get_transcription_service),
):
    """
    Transcribe a spoken meal description.

    Accepts ``multipart/form-data`` with an ``audio`` file, or JSON with
    base64 ``audio`` and ``mimeType`` (or a ``storagePath`` to an uploaded
    recording).
    """
    trace = StageLogger(logger, "transcribe-audio", get_request_id(request))
    request.state.trace = trace
    debug = request.headers.get("x-debug-mode") == "true"

    service.ensure_configured()

    content_type = request.headers.get("content-type", "")
    trace.checkpoint("parse-payload", {"contentType": content_type, "userId": user.id})

    if "multipart/form-data" in content_type:
        audio = await _read_multipart(request)
    elif "application/json" in content_type:
        body = await _read_json(request)
        if debug:
            trace.stage(
                "debug-payload",
                {
                    "hasAudio": bool(body.audio),
                    "audioLength": len(body.audio or ""),
                    "mimeType": body.mime_type,
                    "storagePath": body.storage_path,
                },
            )
        audio = await service.audio_from_json(body, user.id, trace)
    else:
        raise _payload_error(f"Unsupported content type: {content_type or 'none'}")

    if debug:
        trace.stage(
            "debug-audio",
            {"name": audio.filename, "size": audio.size, "type": audio.mime_type},
        )

    response = await service.transcribe(audio, trace)
    trace.checkpoint("success")
    return response
