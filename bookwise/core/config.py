# bookwise/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict
import urllib.parse

class Settings(BaseSettings):
    # Read env from .env; ignore unknown keys so extra lines don't crash startup
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Database ---
    # Full async URL wins; otherwise Postgres is composed from POSTGRES_*,
    # otherwise a local SQLite file is used.
    DATABASE_URL: str | None = None
    POSTGRES_HOST: str | None = None
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "bookwise"
    POSTGRES_USER: str = "bookwise"
    POSTGRES_PASSWORD: str = ""

    # --- Monitoring & Logging ---
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"
    LOG_REQUESTS: bool = False
    LOG_RESPONSES: bool = False
    MAX_LOG_LENGTH: int = 200
    ERROR_AGGREGATION_THRESHOLD: int = 10

    # --- Scheduling engine ---
    SLOT_INTERVAL_MINUTES: int = 15
    SLOT_CLAIM_MINUTES: int = 1  # must divide every bookable start; booking times are whole minutes
    ROUND_ROBIN_LOOKBACK_DAYS: int = 30
    EXTERNAL_CALENDAR_TIMEOUT_SECONDS: float = 3.0
    MEETING_PROVIDER_TIMEOUT_SECONDS: float = 10.0

    # --- Reminders & notifications ---
    REMINDER_OFFSETS_MINUTES: str = "1440,60"  # comma-separated, minutes before start
    SMS_REMINDERS_ENABLED: bool = False
    APP_BASE_URL: str = "http://localhost:8000"

    # --- Meeting providers ---
    ZOOM_ACCESS_TOKEN: str | None = None
    MS_GRAPH_ACCESS_TOKEN: str | None = None
    GOOGLE_SERVICE_ACCOUNT_JSON: str | None = None
    GOOGLE_CALENDAR_ID: str = "primary"

    ALLOWED_CORS_ORIGINS: str = "*"  # comma-separated list, e.g. "http://localhost:3000,https://your.app"

    # Async URI (SQLAlchemy engine)
    @property
    def async_db_uri(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.POSTGRES_HOST:
            pwd = urllib.parse.quote_plus(self.POSTGRES_PASSWORD)
            return f"postgresql+asyncpg://{self.POSTGRES_USER}:{pwd}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        return "sqlite+aiosqlite:///./bookwise.db"

    # Sync URI (Alembic)
    @property
    def sync_db_uri(self) -> str:
        return (
            self.async_db_uri
            .replace("postgresql+asyncpg://", "postgresql://")
            .replace("sqlite+aiosqlite://", "sqlite://")
        )

    @property
    def reminder_offsets(self) -> list[int]:
        return sorted(
            {int(o.strip()) for o in self.REMINDER_OFFSETS_MINUTES.split(",") if o.strip()},
            reverse=True,
        )

    # Helper for CORS lists
    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_CORS_ORIGINS.split(",") if o.strip()]

    # Monitoring helpers
    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local")

# Singleton
settings = Settings()
