"""
Configuration management for NAMASTE FHIR Gateway.

Uses Pydantic Settings for environment variable management with validation.
"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    database_url: str = Field(
        default="sqlite:///./namaste.db",
        description="Database connection URL"
    )
    seed_on_startup: bool = Field(
        default=False,
        description="Load the built-in concept and mapping seed at startup"
    )

    # FHIR settings
    fhir_base_url: str = Field(
        default="http://localhost:8000/fhir",
        description="Base URL used for Bundle entry fullUrls"
    )

    # ABHA identity provider configuration
    abha_base_url: str = Field(
        default="https://abhasbx.abdm.gov.in",
        description="ABHA identity provider base URL"
    )
    abha_profile_url: str = Field(
        default="https://abhasbx.abdm.gov.in/abha/api/v3",
        description="ABHA profile API base URL"
    )
    abha_jwks_url: str = Field(
        default="https://abhasbx.abdm.gov.in/.well-known/jwks.json",
        description="JWKS endpoint publishing ABHA signing keys"
    )
    abha_client_id: Optional[str] = Field(
        default=None,
        description="ABHA client ID"
    )
    abha_client_secret: Optional[str] = Field(
        default=None,
        description="ABHA client secret"
    )
    abha_expected_issuer: Optional[str] = Field(
        default=None,
        description="Required 'iss' claim; issuer is not checked when unset"
    )
    abha_expected_audience: Optional[str] = Field(
        default=None,
        description="Required 'aud' claim; audience is not checked when unset"
    )

    # Demo mode
    demo_mode: bool = Field(
        default=False,
        description="Accept demo tokens without a live identity provider"
    )
    demo_token_secret: str = Field(
        default="demo-abha-secret-key-for-testing-only",
        description="HS256 secret for locally generated demo JWTs"
    )

    # Cache and network settings
    key_cache_ttl_seconds: int = Field(
        default=86400,
        description="Lifetime of cached signing keys"
    )
    profile_cache_ttl_seconds: int = Field(
        default=3600,
        description="Lifetime of cached ABHA profiles"
    )
    http_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for identity provider calls"
    )

    # Generative AI provider
    gemini_api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key; AI features use fallbacks when unset"
    )
    gemini_api_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API base URL; the model path is appended"
    )
    gemini_model: str = Field(
        default="gemini-2.0-flash",
        description="Gemini model identifier"
    )
    ai_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for AI provider calls"
    )

    # Application settings
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    # API settings
    max_search_results: int = Field(
        default=100,
        description="Maximum number of search results to return"
    )
    default_search_limit: int = Field(
        default=20,
        description="Default limit for search queries"
    )

    # Security settings
    allowed_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @property
    def abha_configured(self) -> bool:
        return bool(self.abha_client_id and self.abha_client_secret)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
