"""Engine configuration using Pydantic Settings.

All configuration is loaded from environment variables.
No secrets are hardcoded beyond local development defaults.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection and pool configuration."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(
        default="localhost",
        description="Database host",
    )
    port: int = Field(
        default=5432,
        description="Database port",
    )
    user: str = Field(
        default="postgres",
        description="Database user",
    )
    password: SecretStr = Field(
        default=SecretStr("postgres"),
        description="Database password",
    )
    database: str = Field(
        default="postgres",
        description="Database name",
    )
    min_pool_size: int = Field(
        default=1,
        ge=0,
        description="Minimum pooled connections",
    )
    max_pool_size: int = Field(
        default=20,
        ge=1,
        description="Maximum pooled connections",
    )
    connect_timeout: float = Field(
        default=5.0,
        description="Connection timeout in seconds",
    )
    statement_timeout_ms: int | None = Field(
        default=None,
        ge=1,
        description="Default per-statement timeout in milliseconds",
    )

    @property
    def dsn(self) -> str:
        """Connection string without the password."""
        return f"postgresql://{self.user}@{self.host}:{self.port}/{self.database}"


class StoreSettings(BaseSettings):
    """Vector store defaults."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    table_name: str = Field(
        default="embeddings",
        description="Default embeddings table",
    )
    dimensions: int = Field(
        default=1536,
        description="Default vector dimensions",
    )
    create_table: bool = Field(
        default=True,
        description="Create the table when it does not exist",
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        description="Concurrent upserts per batch chunk",
    )
    default_metric: str = Field(
        default="cosine",
        description="Distance metric used when a query names none",
    )
    default_top_k: int = Field(
        default=10,
        ge=0,
        description="Result limit used when a query names none",
    )


class Settings(BaseSettings):
    """Main engine settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached engine settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
