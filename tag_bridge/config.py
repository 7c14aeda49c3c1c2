"""
Configuration management for the Player Tag Bridge.
"""

import string
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Remote queue API
    remote_api_url: str = Field(default="")
    queue_api_secret: str = Field(default="")
    queue_connect_timeout: float = Field(default=10.0, gt=0.0)
    queue_read_timeout: float = Field(default=30.0, gt=0.0)

    # Local inference endpoint (OpenAI chat completions)
    inference_endpoint: str = Field(default="http://localhost:1234/v1/chat/completions")
    vision_model: str = Field(default="vision-model")
    vision_max_tokens: int = Field(default=100, gt=0)
    vision_connect_timeout: float = Field(default=30.0, gt=0.0)
    vision_read_timeout: float = Field(default=120.0, gt=0.0)

    # Image downloads
    image_connect_timeout: float = Field(default=10.0, gt=0.0)
    image_read_timeout: float = Field(default=30.0, gt=0.0)

    # Tag validation
    tag_allowed_characters: str = Field(
        default="0289PYLQGRJCUVO",
        description="Characters accepted after the leading '#' of a player tag",
    )
    no_tag_marker: str = Field(default="NOTAG")

    # Gemini proxy mapping
    proxy_temperature: float = Field(default=0.7, ge=0.0)
    proxy_max_tokens: int = Field(default=2000, gt=0)
    proxy_connect_timeout: float = Field(default=30.0, gt=0.0)
    proxy_read_timeout: float = Field(default=60.0, gt=0.0)

    # Logging Configuration
    log_level: str = Field(default="INFO")

    @field_validator("remote_api_url", "inference_endpoint")
    @classmethod
    def validate_url(cls, v):
        """Ensure configured URLs are properly formatted."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("tag_allowed_characters")
    @classmethod
    def validate_tag_characters(cls, v):
        """Ensure the allow-list only holds characters a tag can contain."""
        v = v.strip().upper()
        if not v:
            raise ValueError("TAG_ALLOWED_CHARACTERS must not be empty")
        alphabet = set(string.ascii_uppercase + string.digits)
        invalid = sorted(set(v) - alphabet)
        if invalid:
            raise ValueError(f"TAG_ALLOWED_CHARACTERS contains characters outside A-Z0-9: {invalid}")
        return "".join(sorted(set(v)))

    @field_validator("no_tag_marker")
    @classmethod
    def validate_no_tag_marker(cls, v):
        if not v.strip():
            raise ValueError("NO_TAG_MARKER must not be empty")
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure the log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {valid_levels}")
        return v.upper()

    def get_missing_worker_settings(self) -> list:
        """Names of settings a queue drain cannot run without."""
        missing = []
        if not self.remote_api_url:
            missing.append("REMOTE_API_URL")
        if not self.inference_endpoint:
            missing.append("INFERENCE_ENDPOINT")
        return missing


# Global settings instance
settings = Settings()
