"""
Sales Data Warehouse
Centralized Configuration Management

Configuration is read from environment variables (and an optional .env file)
through Pydantic settings, grouped into one section per concern.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """SQL warehouse connection used when publishing the star schema"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="sales_dwh", alias="POSTGRES_DB", description="Database name")
    user: str = Field(default="dwh", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL (overrides host/port)")
    echo: bool = Field(default=False, description="Echo SQL statements")

    @property
    def sync_url(self) -> str:
        """Sync database URL for psycopg2, or the explicit override"""
        if self.url:
            return self.url
        return f"postgresql+psycopg2://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class DataLakeSettings(BaseSettings):
    """Locations of the source extracts and of the three pipeline zones"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    source_path: str = Field(default="./data/source", description="Root folder of the CRM/ERP extracts")
    staging_path: str = Field(default="./data/staging", description="Raw staging zone path")
    clean_path: str = Field(default="./data/clean", description="Cleansed zone path")
    curated_path: str = Field(default="./data/curated", description="Star schema zone path")

    # Extract format
    delimiter: str = Field(default=",", description="Field delimiter of the extracts")
    encoding: str = Field(default="utf8", description="Extract encoding (utf8 or utf8-lossy)")


class PipelineSettings(BaseSettings):
    """Behaviour switches of the full-refresh pipeline"""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    continue_on_load_error: bool = Field(
        default=True,
        description="Keep loading the remaining extracts after one fails",
    )
    parallel_loads: bool = Field(default=False, description="Load extracts on a thread pool")
    max_load_workers: int = Field(default=4, description="Thread pool size for parallel loads")
    strict_business_keys: bool = Field(
        default=False,
        description="Abort the cleansing stage on the first unusable business key",
    )
    erp_customer_prefixes: List[str] = Field(
        default=["NAS"],
        description="Source-system prefixes stripped from ERP customer ids",
    )
    publish_to_database: bool = Field(
        default=False,
        description="Also replace the star schema tables in the SQL warehouse",
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing pipeline configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="sales-dwh", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

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


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
