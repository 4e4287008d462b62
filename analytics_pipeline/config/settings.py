"""
Shop Analytics Pipeline
Centralized Configuration Management

Configuration is read from environment variables (and an optional .env file)
through Pydantic settings, one section per subsystem.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import AliasChoices, Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


LOCAL_BROKER_PREFIXES = ("localhost", "127.0.0.1", "kafka:")

# Every section reads the same .env file as the top-level Settings
ENV_FILE_CONFIG = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


class DatabaseSettings(BaseSettings):
    """Projection Store Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True, **ENV_FILE_CONFIG)

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="shop_analytics", alias="database", description="Database name")
    user: str = Field(default="analytics", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(
        default=None,
        alias="PROJECTION_STORE_URL",
        description="Projection store URL (overrides host/port). Use memory:// for the in-process store",
    )
    create_tables: bool = Field(
        default=True,
        alias="PROJECTION_STORE_CREATE_TABLES",
        description="Create projection tables on startup",
    )

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"

    def get_url(self) -> str:
        """Projection store URL - uses PROJECTION_STORE_URL if set, otherwise builds from host/port"""
        return self.url or self.async_url


class KafkaSettings(BaseSettings):
    """Kafka Event Source Configuration"""

    model_config = SettingsConfigDict(env_prefix="KAFKA_", populate_by_name=True, **ENV_FILE_CONFIG)

    bootstrap_servers: str = Field(
        default="localhost:9092",
        validation_alias=AliasChoices("KAFKA_BOOTSTRAP_SERVERS", "KAFKA_BROKER", "REDPANDA_BROKER"),
        description="Kafka bootstrap servers",
    )
    client_id: str = Field(default="analytics-pipeline", description="Client ID")
    consumer_group: str = Field(default="kafka-service-group", description="Consumer group ID")
    auto_offset_reset: str = Field(default="earliest", description="Auto offset reset policy")
    session_timeout_ms: int = Field(default=30000, description="Session timeout")
    heartbeat_interval_ms: int = Field(default=3000, description="Heartbeat interval")
    request_timeout_ms: int = Field(default=30000, description="Request timeout")

    # Topic configuration
    topic_events: str = Field(default="users-event", description="User interaction events topic")

    # Authentication (SCRAM-SHA-256 over SSL)
    username: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("KAFKA_USERNAME", "REDPANDA_USERNAME"),
        description="SASL username",
    )
    password: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("KAFKA_PASSWORD", "REDPANDA_PASSWORD"),
        description="SASL password",
    )
    ssl: Optional[bool] = Field(default=None, description="Force SSL/SASL on or off")

    @property
    def brokers(self) -> List[str]:
        """Broker addresses as a list"""
        return [broker.strip() for broker in self.bootstrap_servers.split(",") if broker.strip()]

    @property
    def is_local_broker(self) -> bool:
        """Check if every broker is a local one"""
        return all(broker.startswith(LOCAL_BROKER_PREFIXES) for broker in self.brokers)

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @property
    def use_authentication(self) -> bool:
        """
        SASL/SSL is enabled when credentials exist and the broker is remote.

        KAFKA_SSL=true/false overrides the detection.
        """
        if self.ssl is not None:
            return self.ssl and self.has_credentials
        return self.has_credentials and not self.is_local_broker


class PipelineSettings(BaseSettings):
    """Aggregation Pipeline Configuration"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_", **ENV_FILE_CONFIG)

    batch_interval_ms: int = Field(default=3000, gt=0, description="Batch processing interval in milliseconds")
    max_batch_size: int = Field(default=100, gt=0, description="Max events processed per batch")
    action_log_limit: int = Field(
        default=500,
        ge=0,
        description="Max action log entries kept per user (0 keeps everything)",
    )
    flush_on_shutdown: bool = Field(
        default=False,
        description="Drain the whole queue on shutdown instead of only finishing the in-flight batch",
    )


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="", **ENV_FILE_CONFIG)

    # Logging
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
    app_name: str = Field(default="shop-analytics-pipeline", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)
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
