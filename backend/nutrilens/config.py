"""
NutriLens AI - Configuration Management

Loads and validates environment variables for API keys, model selection
and pipeline switches.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Keys
    google_api_key: str = Field(
        default="",
        alias="GOOGLE_GENERATIVE_AI_API_KEY",
        description="Google Gemini API key"
    )
    opik_api_key: str = Field(
        default="",
        alias="OPIK_API_KEY",
        description="Comet Opik API key for observability"
    )
    opik_workspace: Optional[str] = Field(default=None, alias="OPIK_WORKSPACE")
    opik_url_override: Optional[str] = Field(default=None, alias="OPIK_URL_OVERRIDE")

    # Application Settings
    environment: str = Field(
        default="development",
        alias="ENVIRONMENT"
    )
    debug: bool = Field(
        default=True,
        alias="DEBUG"
    )
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )

    # Opik Settings
    opik_project_name: str = Field(
        default="nutrilens-ai",
        alias="OPIK_PROJECT_NAME"
    )

    # Model Settings
    vision_model: str = Field(default="gemini-2.0-flash", alias="VISION_MODEL")
    text_model: str = Field(default="gemini-2.0-flash", alias="TEXT_MODEL")
    judge_model: str = Field(default="gemini-2.0-flash", alias="JUDGE_MODEL")
    inference_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        alias="INFERENCE_TIMEOUT_SECONDS",
        description="Per-call timeout enforced by the inference client"
    )

    # Pipeline Settings
    confidence_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        alias="CONFIDENCE_THRESHOLD",
        description="Minimum recognition confidence for an item to be analyzed"
    )
    enable_tracing: bool = Field(default=True, alias="ENABLE_TRACING")
    enable_evaluation: bool = Field(default=True, alias="ENABLE_EVALUATION")
    enable_feedback_loop: bool = Field(default=True, alias="ENABLE_FEEDBACK_LOOP")
    max_image_bytes: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        alias="MAX_IMAGE_BYTES"
    )

    # API Settings
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    # CORS Settings (for frontend communication)
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        alias="CORS_ORIGINS"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    def validate_required_keys(self) -> dict[str, bool]:
        """Check which API keys are configured."""
        return {
            "google_api_key": bool(self.google_api_key),
            "opik_api_key": bool(self.opik_api_key),
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
