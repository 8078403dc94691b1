"""Service configuration using pydantic-settings.

This module defines the CategorizationSettings class that reads configuration
from environment variables with the CATEGORIZER_ prefix. Required fields must
be set via environment variables for the service to start.
"""

from typing import Optional

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CategorizationSettings(BaseSettings):
    """Categorization service configuration from environment variables.

    All environment variables are prefixed with CATEGORIZER_ (e.g.,
    CATEGORIZER_GITHUB_APP_ID).

    Required fields (must be set via environment variables):
    - github_app_id: GitHub App identifier used as the JWT issuer
    - github_app_private_key: PEM private key of the GitHub App
    - api_token: Bearer token API callers must present
    """

    model_config = SettingsConfigDict(
        env_prefix="CATEGORIZER_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub App Configuration
    # -------------------------------------------------------------------------
    github_app_id: str

    # PEM encoded; quotes and escaped newlines from secret stores are normalized
    github_app_private_key: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    github_timeout_seconds: float = 30.0

    # -------------------------------------------------------------------------
    # AI Provider Configuration
    # -------------------------------------------------------------------------
    # Request timeout handed to the LangChain chat clients
    generation_timeout_seconds: float = 60.0

    # Cached installation tokens expiring sooner than this are re-acquired
    token_refresh_buffer_seconds: int = 300

    # -------------------------------------------------------------------------
    # Database Configuration
    # -------------------------------------------------------------------------
    # PostgreSQL connection string; the in-memory store is used when unset
    database_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    api_token: str

    host: str = "0.0.0.0"

    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_app_id", "api_token")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Validate that required credentials are not blank."""
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v.strip()

    @field_validator("github_app_private_key")
    @classmethod
    def normalize_private_key(cls, v: str) -> str:
        """Strip wrapping quotes and expand escaped newlines in the PEM key."""
        if not v or not v.strip():
            raise ValueError("github_app_private_key cannot be empty")
        key = v.strip()
        if len(key) >= 2 and key[0] == key[-1] and key[0] in ("'", '"'):
            key = key[1:-1]
        return key.replace("\\n", "\n")

    @field_validator("github_base_url")
    @classmethod
    def validate_github_base_url(cls, v: str) -> str:
        """Validate that the GitHub base URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("github_timeout_seconds", "generation_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float, info: ValidationInfo) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("token_refresh_buffer_seconds")
    @classmethod
    def validate_refresh_buffer(cls, v: int) -> int:
        if v < 0:
            raise ValueError("token_refresh_buffer_seconds cannot be negative")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that database URL, when given, is a PostgreSQL URL."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def get_settings() -> CategorizationSettings:
    """Create and return CategorizationSettings instance.

    Returns:
        CategorizationSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return CategorizationSettings()
