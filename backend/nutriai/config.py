"""Application configuration."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "NutriAI API"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    functions_prefix: str = "/functions/v1"

    # Supabase (auth + storage)
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None  # Verify tokens locally when set
    supabase_jwt_audience: str = "authenticated"
    supabase_timeout: float = 10.0
    audio_storage_bucket: str = "voice-recordings"

    # USDA FoodData Central
    usda_api_key: Optional[str] = None
    usda_api_url: str = "https://api.nal.usda.gov/fdc/v1"
    usda_timeout: float = 10.0
    usda_max_attempts: int = 3

    # Food search
    search_cache_ttl_seconds: int = 15 * 60
    search_rate_limit_requests: int = 10
    search_rate_limit_window_seconds: int = 60

    # OpenAI API
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None  # For OpenAI-compatible providers
    openai_vision_model: str = "gpt-4.1-mini"
    openai_text_model: str = "gpt-4o-mini"
    openai_timeout: float = 60.0
    openai_max_retries: int = 2
    whisper_model: str = "whisper-1"
    whisper_language: str = "en"
    whisper_prompt: str = "Meal description with portions and ingredients."
    max_audio_bytes: int = 10 * 1024 * 1024

    # Anthropic API
    anthropic_api_key: Optional[str] = None
    claude_vision_model: str = "claude-sonnet-4-20250514"
    claude_text_model: str = "claude-sonnet-4-20250514"
    claude_max_tokens: int = 4096
    ai_provider: str = "anthropic"  # "anthropic" (default) or "openai"

    # CORS
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
