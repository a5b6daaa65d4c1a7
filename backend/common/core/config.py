from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import Environment


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment Profile
    environment: Environment = Environment.LOCAL

    # API Settings
    app_name: str = "bedtime-stories-api"
    api_version: str = "1.0.0"
    debug: bool = False

    # Database Components
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "bedtime_stories"
    db_pool_size: int = 10
    db_pool_overflow: int = 5
    database_url_override: Optional[str] = None  # e.g. sqlite+aiosqlite:///./local.db

    @property
    def database_url(self) -> str:
        """Construct async database URL from components."""
        if self.database_url_override:
            return self.database_url_override
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # OpenTelemetry
    otel_service_name: str = "bedtime-stories-api"
    otel_service_version: str = "1.0.0"
    otel_exporter_endpoint: Optional[str] = None  # OTLP/HTTP traces endpoint
    otel_exporter_token: Optional[str] = None

    # Billing - Stripe (payments)
    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    stripe_webhook_secret: str = ""
    # Stripe price IDs for subscription tiers, per billing cadence
    stripe_price_id_dream_weaver_monthly: str = ""
    stripe_price_id_dream_weaver_annual: str = ""
    stripe_price_id_magic_circle_monthly: str = ""
    stripe_price_id_magic_circle_annual: str = ""
    stripe_price_id_enchanted_library_monthly: str = ""
    stripe_price_id_enchanted_library_annual: str = ""
    # Single price from before tiers existed, billed as Magic Circle monthly
    stripe_price_id_legacy_monthly: str = ""

    @property
    def cors_allowed_origins(self) -> List[str]:
        """Auto-select CORS origins based on environment."""
        if self.environment == Environment.LOCAL:
            return [
                "http://localhost:3000",
                "http://localhost:3001",
            ]
        return [
            "https://bedtimestories.app",
            "https://www.bedtimestories.app",
        ]


settings = Settings()
