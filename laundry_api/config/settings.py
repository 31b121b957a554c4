"""
Application Settings

Configuration is read from environment variables and an optional ``.env``
file, grouped by concern. Every group can be overridden on its own, which the
test suite uses to run against SQLite.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENVIRONMENTS = ("development", "staging", "production", "testing")


class DatabaseSettings(BaseSettings):
    """
    Marketplace database.

    ``DATABASE_URL`` takes precedence over the individual ``POSTGRES_*``
    variables and may point at any async SQLAlchemy driver.
    """

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    host: str = "localhost"
    port: int = 5432
    db: str = Field(default="laundry_marketplace", alias="POSTGRES_DB")
    user: str = "laundry"
    password: SecretStr = SecretStr("laundry")
    pool_size: int = Field(default=10, ge=1, description="Connections kept open per worker")
    echo: bool = Field(default=False, description="Log every SQL statement")

    @property
    def async_url(self) -> str:
        if self.url:
            return self.url
        secret = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{secret}@{self.host}:{self.port}/{self.db}"


class SecuritySettings(BaseSettings):
    """HTTP boundary: browser origins and request throttling"""

    model_config = SettingsConfigDict(env_prefix="")

    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        alias="CORS_ORIGINS",
        description="Dashboard front-ends allowed to call the API",
    )
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_requests: int = Field(default=100, alias="RATE_LIMIT_REQUESTS", description="Requests per window")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS")


class MonitoringSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="json, or console for anything else")


class AnalyticsSettings(BaseSettings):
    """Business rules shared by order placement and the reporting endpoints"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    delivery_fee: float = Field(default=15.0, ge=0, description="Flat delivery fee added to every order")
    top_customers_limit: int = Field(default=10, ge=1, description="Size of top-customer rankings")
    top_products_limit: int = Field(default=10, ge=1, description="Size of top-product rankings")
    peak_hours_limit: int = Field(default=5, ge=1, description="Size of the peak-hour ranking")
    recent_orders_limit: int = Field(default=5, ge=1, description="Recent orders shown on detail pages")
    product_trend_months: int = Field(default=6, ge=1, description="Calendar months in the product revenue trend")


class Settings(BaseSettings):
    """Top-level settings; one instance per process via :func:`get_settings`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="laundry-marketplace-api", alias="APP_NAME")
    app_env: str = Field(default="development", alias="APP_ENV")
    debug: bool = Field(default=False, alias="DEBUG")
    version: str = "1.0.0"

    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        if v.lower() not in ENVIRONMENTS:
            raise ValueError(f"APP_ENV must be one of: {', '.join(ENVIRONMENTS)}")
        return v.lower()

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """Settings loaded once per process."""
    return Settings()
