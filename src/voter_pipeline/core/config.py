"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        description="Async SQLAlchemy connection string (postgresql+asyncpg://... or sqlite+aiosqlite://...)",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not re.match(r"^[a-z_][a-z0-9_]{0,62}$", v):
            msg = "Invalid database_schema: must match ^[a-z_][a-z0-9_]{0,62}$"
            raise ValueError(msg)
        return v

    # Chunked import
    import_chunk_size: int = Field(
        default=250,
        description="Data rows per import chunk (keeps each request in the tens-of-kilobytes range)",
        gt=0,
    )
    import_max_attempts: int = Field(
        default=3,
        description="Total attempts per chunk, including the first",
        gt=0,
    )
    import_retry_base_delay: float = Field(
        default=1.0,
        description="Initial chunk retry delay in seconds; doubles on each attempt",
        ge=0,
    )
    import_inter_chunk_delay: float = Field(
        default=0.1,
        description="Pause between chunks in seconds to bound burst load on the importer",
        ge=0,
    )
    import_max_errors: int = Field(
        default=100,
        description="Maximum number of error messages kept in an import summary",
        gt=0,
    )

    # Geocoding provider
    geocoder_provider: str = Field(
        default="nominatim",
        description="Geocoder provider used by batch jobs",
    )
    geocoder_nominatim_email: str = Field(
        default="",
        description="Email for Nominatim usage policy compliance",
    )
    geocoder_nominatim_timeout: float = Field(
        default=10.0,
        description="Nominatim request timeout in seconds",
        gt=0,
    )
    geocoder_nominatim_user_agent: str = Field(
        default="voter-pipeline/1.0",
        description="User-Agent header sent to Nominatim (required by its usage policy)",
    )
    geocoder_country_codes: str = Field(
        default="my",
        description="Comma-separated ISO country codes the provider restricts results to",
    )
    geocoder_region_suffix: str = Field(
        default="Sabah, Malaysia",
        description="Region appended to every address query to improve match accuracy",
    )

    # Geocoding batch jobs
    geocoder_batch_size: int = Field(
        default=100,
        description="Records fetched from the record source per page",
        gt=0,
    )
    geocoder_max_attempts: int = Field(
        default=3,
        description="Attempts per record on transient provider errors",
        gt=0,
    )
    geocoder_retry_base_delay: float = Field(
        default=2.0,
        description="Initial per-record retry delay in seconds; doubles on each attempt",
        ge=0,
    )
    geocoder_max_consecutive_transient_failures: int = Field(
        default=50,
        description="Consecutive records failing on transient errors before the job is failed",
        gt=0,
    )
    geocoder_min_confidence: float = Field(
        default=0.0,
        description="Results with a lower confidence score are counted as failed",
        ge=0,
        le=1,
    )
    geocoder_force_regeocode_default: bool = Field(
        default=False,
        description="Whether new jobs re-geocode records that already hold coordinates",
    )
    geocoding_poll_interval: float = Field(
        default=2.0,
        description="Seconds between status polls in the CLI",
        gt=0,
    )

    @property
    def geocoder_country_code_list(self) -> list[str]:
        """Parse country codes string into a lowercase list."""
        if not self.geocoder_country_codes.strip():
            return []
        return [c.strip().lower() for c in self.geocoder_country_codes.split(",") if c.strip()]

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
