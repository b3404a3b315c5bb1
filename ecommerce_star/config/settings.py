"""
E-Commerce Clickstream Star Schema
Centralized Configuration Management

This module provides configuration management using Pydantic settings with
environment variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import List, Literal, Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Star schema database configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="ecommerce_star", alias="POSTGRES_DB", description="Database name")
    user: str = Field(default="ecommerce", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    url: Optional[str] = Field(default=None, description="Full async URL (overrides host/port)")
    echo: bool = Field(default=False, description="Echo SQL queries")
    insert_chunk_size: int = Field(default=5000, description="Rows per bulk insert statement")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class DataLakeSettings(BaseSettings):
    """Data Lake Storage Configuration"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    raw_path: str = Field(default="./data/raw/events.csv", description="Raw event file")
    curated_path: str = Field(default="./data/curated", description="Curated zone path")

    # File formats
    default_format: str = Field(default="csv", description="Raw event file format")
    compression: str = Field(default="snappy", description="Parquet compression codec")


class PipelineSettings(BaseSettings):
    """ETL and metric parameters"""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    allowed_event_types: List[str] = Field(
        default=["view", "cart", "purchase", "return"],
        description="Event types kept by the sanitizer",
    )
    fact_event_types: List[str] = Field(
        default=["purchase", "return"],
        description="Event types assembled into the fact table",
    )
    product_key_strategy: Literal["product_id_brand_price", "product_id_brand", "product_id"] = Field(
        default="product_id_brand_price",
        description="Natural key used for the product dimension",
    )
    fail_on_integrity_violation: bool = Field(
        default=False,
        description="Abort the run when the fact table has nulls or orphans",
    )

    # Metric parameters
    min_product_purchases: int = Field(default=5, description="Products need strictly more purchases than this")
    top_brands_limit: int = Field(default=5, description="Brands returned by the top brands query")
    top_products_limit: int = Field(default=5, description="Products returned by the highest average price query")
    top_categories_limit: int = Field(default=3, description="Categories returned by the most returned query")
    top_spenders_limit: int = Field(default=3, description="Users returned by the top spenders query")
    segment_limit: int = Field(default=10, description="Rows returned by segmentation queries")
    high_value_revenue_threshold: float = Field(default=1000.0, description="Minimum purchase total for high value users")
    high_value_max_return_ratio: float = Field(default=0.1, description="Maximum return ratio for high value users")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="ecommerce-star", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
