"""
E-Commerce Metrics Analytics Service
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type
safety. Every subsystem reads its section from the cached root settings.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Metric store (PostgreSQL) configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="ecommerce_analytics", alias="database", description="Database name")
    user: str = Field(default="ecommerce", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full async URL (overrides host/port)")
    auto_create_tables: bool = Field(default=True, description="Create missing tables on startup")

    @property
    def async_url(self) -> str:
        """Async database URL - uses DATABASE_URL if set, otherwise asyncpg from host/port"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class KafkaSettings(BaseSettings):
    """Real-time metrics stream configuration"""

    model_config = SettingsConfigDict(env_prefix="KAFKA_")

    enabled: bool = Field(default=True, description="Run the real-time ingestor")
    bootstrap_servers: str = Field(default="localhost:9092", description="Kafka bootstrap servers")
    consumer_group: str = Field(default="api-servers", description="Consumer group ID")
    topic: str = Field(default="analytics-metrics", description="Real-time metrics topic")
    auto_offset_reset: str = Field(default="latest", description="Start from the current offset, no replay")
    max_poll_records: int = Field(default=500, description="Max records per poll")
    poll_timeout_ms: int = Field(default=1000, description="Poll timeout")
    session_timeout_ms: int = Field(default=30000, description="Session timeout")
    heartbeat_interval_ms: int = Field(default=10000, description="Heartbeat interval")

    # Backpressure between intake and upsert
    queue_capacity: int = Field(default=1000, ge=1, description="Bounded ingest queue size")
    overflow_policy: str = Field(default="block", description="Queue overflow policy: block or drop")

    # Reconnection
    reconnect_attempts: int = Field(default=5, ge=1, description="Consecutive connection attempts before failing")
    reconnect_backoff_min_s: float = Field(default=1.0, description="Initial reconnect backoff")
    reconnect_backoff_max_s: float = Field(default=30.0, description="Maximum reconnect backoff")

    # Store writes from the ingestor
    store_retry_attempts: int = Field(default=5, ge=1, description="Upsert attempts per message before resubscribing")
    store_retry_backoff_min_s: float = Field(default=0.5, description="Initial upsert retry backoff")
    store_retry_backoff_max_s: float = Field(default=10.0, description="Maximum upsert retry backoff")

    @field_validator("overflow_policy")
    @classmethod
    def validate_overflow_policy(cls, v: str) -> str:
        """Validate overflow policy value"""
        allowed = ["block", "drop"]
        if v.lower() not in allowed:
            raise ValueError(f"Overflow policy must be one of: {allowed}")
        return v.lower()


class AnalyticsSettings(BaseSettings):
    """Query-side analytics configuration"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    query_timeout_seconds: float = Field(default=10.0, gt=0, description="Per storage query timeout")
    max_concurrent_aggregations: int = Field(default=8, ge=1, description="Admission limit for heavy queries")
    active_session_minutes: int = Field(default=30, ge=1, description="Trailing window for active sessions")
    dashboard_top_products: int = Field(default=5, ge=1, description="Products on the dashboard")
    dashboard_recent_orders: int = Field(default=5, ge=1, description="Orders on the dashboard")
    strict_sort_fields: bool = Field(default=False, description="Reject unknown product sort fields")


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


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
    app_name: str = Field(default="ecommerce-metrics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=3002, alias="API_PORT", description="API port")

    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
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

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
