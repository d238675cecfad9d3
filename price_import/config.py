"""Configuration management using pydantic-settings."""
import logging
import sys
from typing import Any, Optional

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MatchingSettings(BaseSettings):
    """Matcher configuration loaded from environment variables.

    All settings prefixed with MATCH_ (e.g., MATCH_FUZZY_MEDIUM_COVERAGE=0.6)
    """

    fuzzy_high_coverage: float = Field(
        default=1.0,
        ge=0,
        le=1,
        description="Token coverage >= this gives a fuzzy-name match high confidence"
    )
    fuzzy_medium_coverage: float = Field(
        default=0.5,
        ge=0,
        le=1,
        description="Token coverage >= this gives a fuzzy-name match medium confidence"
    )

    model_config = SettingsConfigDict(
        env_prefix="MATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class ImportSettings(BaseSettings):
    """Price import settings loaded from environment variables.

    All settings prefixed with PRICE_IMPORT_ (e.g., PRICE_IMPORT_LOG_LEVEL=DEBUG)
    """

    log_level: str = "INFO"
    environment: str = "development"

    # Template persistence (optional, only needed for the SQL repository)
    database_url: Optional[str] = None

    operation_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Default bound for file reads, parses and catalog queries"
    )
    preview_rows: int = Field(
        default=5,
        ge=1,
        le=500,
        description="Rows returned by a file preview when the caller gives no limit"
    )
    start_row_scan_limit: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Rows scanned when suggesting the first data row"
    )
    csv_chunk_size: int = Field(
        default=1000,
        ge=10,
        le=100_000,
        description="Rows read per chunk from delimited files"
    )
    apply_concurrency: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Maximum concurrent catalog writes during an apply"
    )
    default_currency: str = Field(
        default="UAH",
        min_length=3,
        max_length=3,
        description="ISO 4217 currency assumed when a template does not set one"
    )

    model_config = SettingsConfigDict(
        env_prefix="PRICE_IMPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


# Global settings instances
settings = ImportSettings()
matching_settings = MatchingSettings()


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog for JSON (production) or console output."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


configure_logging(settings.log_level, json_output=settings.is_production)
