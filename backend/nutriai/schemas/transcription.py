"""Audio transcription schemas."""
from typing import Optional

from nutriai.schemas.base import CamelModel


class TranscriptionJSONRequest(CamelModel):
    """JSON body: base64 audio with its MIME type, or a storage path."""
    audio: Optional[str] = None
    mime_type: Optional[str] = None
    storage_path: Optional[str] = None


class TranscriptionResponse(CamelModel):
    """Transcribed meal description."""
    transcription: str
    confidence: float = 1.0  # Whisper does not report confidence
    duration: Optional[float] = None  # seconds
