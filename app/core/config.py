from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Store ─────────────────────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./family-board.db"

    # ── Legacy JSON mirror ───────────────────────────────────
    MIRROR_PATH: str = "family-status.json"

    # ── API ───────────────────────────────────────────────────
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    # ── Live stream ───────────────────────────────────────────
    BROADCAST_DEBOUNCE_MS: int = 100
    HEARTBEAT_INTERVAL_SEC: float = 30.0
    SUBSCRIBER_QUEUE_SIZE: int = 32
    MAX_SUBSCRIBERS: int = 1000
    # File or directory whose changes trigger a broadcast; empty disables it.
    WATCH_PATH: str = ""

    # ── History ───────────────────────────────────────────────
    HISTORY_DEFAULT_LIMIT: int = 100
    HISTORY_MAX_LIMIT: int = 1000

    # ── Client ────────────────────────────────────────────────
    STATUS_BASE_URL: str = "http://localhost:8000"
    RECONNECT_BASE_DELAY_SEC: float = 3.0
    RECONNECT_MAX_DELAY_SEC: float = 30.0
    RECONNECT_MAX_ATTEMPTS: int = 10
    POLLING_INTERVAL_SEC: int = 5

    @field_validator("POLLING_INTERVAL_SEC")
    @classmethod
    def _clamp_polling_interval(cls, v: int) -> int:
        """Polling interval is bounded to [1, 300] seconds."""
        return max(1, min(v, 300))

    @property
    def debounce_sec(self) -> float:
        return self.BROADCAST_DEBOUNCE_MS / 1000.0


settings = Settings()
