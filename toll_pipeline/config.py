"""
Configuration settings for the toll pipeline.

Uses Pydantic Settings to load environment variables for database connections,
logging, ingestion routing thresholds, queue worker sizing and report budgets.
"""
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("toll_pipeline", alias="DB_NAME")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Ingestion
    max_batch_size: int = Field(10_000, alias="MAX_BATCH_SIZE")
    max_amount_paid: Decimal = Field(Decimal("999999.99"), alias="MAX_AMOUNT_PAID")
    bulk_threshold: int = Field(100, alias="BULK_THRESHOLD")
    bulk_chunk_size: int = Field(10_000, alias="BULK_CHUNK_SIZE")
    bulk_timeout_seconds: int = Field(300, alias="BULK_TIMEOUT_SECONDS")

    # Queue dispatcher
    queue_workers: int = Field(5, alias="QUEUE_WORKERS")
    queue_max_parallelism: int = Field(10, alias="QUEUE_MAX_PARALLELISM")
    queue_max_deliveries: int = Field(5, alias="QUEUE_MAX_DELIVERIES")
    queue_lease_seconds: float = Field(300.0, alias="QUEUE_LEASE_SECONDS")
    queue_poll_interval_seconds: float = Field(0.5, alias="QUEUE_POLL_INTERVAL_SECONDS")

    # Reports
    report_timeout_seconds: float = Field(10.0, alias="REPORT_TIMEOUT_SECONDS")
    report_max_page_size: int = Field(100, alias="REPORT_MAX_PAGE_SIZE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
