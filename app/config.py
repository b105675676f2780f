"""Configuration management - loads environment variables into typed settings."""

from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from homegpt.core.config import DEFAULT_TIMEOUT_MS
from homegpt.core.uploads import MAX_UPLOAD_BYTES


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gateway Server Configuration
    gateway_host: str = Field(default="127.0.0.1", description="Host for the gateway to listen on")
    gateway_port: int = Field(default=3000, description="Port for the gateway to listen on")

    # Inference Backend
    ollama_base_url: str | None = Field(
        default=None,
        description="Base URL of the Ollama backend (client default: http://localhost:11434)",
    )
    ollama_model: str | None = Field(
        default=None,
        description="Default model for chat/ask (client default: llama2)",
    )
    ollama_timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        description="Deadline for chat and generate calls (milliseconds)",
    )

    # Uploads
    upload_dir: str = Field(default="temp", description="Directory where uploaded audio is stored")
    upload_max_bytes: int = Field(
        default=MAX_UPLOAD_BYTES,
        description="Maximum accepted audio upload size in bytes",
    )

    # Security Configuration
    api_key: str | None = Field(
        default=None,
        description="API key for gateway authentication (optional). If set, requires Authorization: Bearer <API_KEY>",
    )
    allow_origins: str = Field(
        default="",
        description="CORS allowed origins (comma-separated list, empty = no CORS)",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )

    @field_validator("gateway_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not (1 <= v <= 65535):
            raise ValueError(f"gateway_port must be between 1 and 65535, got {v}")
        return v

    @field_validator("ollama_timeout_ms", "upload_max_bytes")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v

    @field_validator("ollama_base_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate URL format if provided."""
        if v is None or v == "":
            return None
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"URL must use http or https scheme, got {v}")
        if not parsed.netloc:
            raise ValueError(f"URL must have a valid host, got {v}")
        return v

    @field_validator("ollama_model", "api_key")
    @classmethod
    def blank_is_unset(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got {v}")
        return v.upper()

    @property
    def allow_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if not self.allow_origins:
            return []
        return [origin.strip() for origin in self.allow_origins.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Settings are loaded from environment variables and .env file on first call.
    Subsequent calls return the cached instance.

    Raises:
        ValueError: If settings are present but invalid.

    Returns:
        Settings: The validated settings instance.
    """
    try:
        return Settings()
    except Exception as e:
        raise ValueError(
            f"Failed to load configuration: {e}\n"
            "Please check your .env file and ensure all settings are valid."
        ) from e
