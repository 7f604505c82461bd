"""
Configuration settings using Pydantic Settings.

Connection strings and tuning knobs are loaded from environment variables or a
local .env file. Never hardcode database credentials in the code.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
    PydanticBaseSettingsSource,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Order: init kwargs > .env (dotenv) > env vars > file secrets
    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        return (
            init_settings,
            dotenv_settings,
            env_settings,
            file_secret_settings,
        )

    # Database Configuration
    database_url: str = Field(
        "postgresql://localhost/rankforge",
        validation_alias=AliasChoices("DATABASE_URL", "RANKFORGE_DATABASE_URL"),
    )
    database_pool_min_size: int = Field(2, alias="DATABASE_POOL_MIN_SIZE")
    database_pool_size: int = Field(10, alias="DATABASE_POOL_SIZE")
    database_pool_timeout: int = Field(30, alias="DATABASE_POOL_TIMEOUT")

    # Ingestion
    ingest_min_accolades: int = Field(
        6,
        alias="INGEST_MIN_ACCOLADES",
        description="Games with fewer accolade lines before Game Over are not ranked",
    )
    bomb_timer_seconds: int = Field(40, alias="BOMB_TIMER_SECONDS")

    # Flush / persistence boundary
    flush_max_retries: int = Field(3, alias="FLUSH_MAX_RETRIES")
    flush_retry_base_delay: float = Field(0.1, alias="FLUSH_RETRY_BASE_DELAY")
    flush_timeout_seconds: float = Field(30.0, alias="FLUSH_TIMEOUT_SECONDS")

    # Rating
    rating_initial: float = Field(1000.0, alias="RATING_INITIAL")
    rating_k_factor: float = Field(32.0, alias="RATING_K_FACTOR")

    # Observability
    metrics_enabled: bool = Field(True, alias="METRICS_ENABLED")

    # Application Configuration
    app_debug: bool = Field(False, alias="APP_DEBUG")
    app_log_level: str = Field("INFO", alias="APP_LOG_LEVEL")


# Global settings instance loaded from environment / .env
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance.

    This function provides dependency injection support for settings.
    """
    return settings
