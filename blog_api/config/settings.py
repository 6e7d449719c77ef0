from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- Basic Info ---
    APP_NAME: str = "Blog API Client"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- API ---
    API_BASE_URL: str = "http://localhost:5000/api"
    REFRESH_ENDPOINT: str = "/auth/refresh-token"

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    STORAGE_DIR: Path = BASE_DIR / ".storage"

    # --- HTTP Client Configuration ---
    HTTP_TIMEOUT_CONNECT: float = 10.0
    HTTP_TIMEOUT_READ: float = 15.0
    HTTP_TIMEOUT_WRITE: float = 10.0
    HTTP_TIMEOUT_POOL: float = 5.0
    # Потолок на одну попытку целиком (поверх таймаутов httpx)
    REQUEST_TIMEOUT: float = 15.0
    HTTP2: bool = False
    MAX_CONNECTIONS: int = 10

    # --- Cache ---
    CACHE_ENABLED: bool = False
    CACHE_TTL_MS: int = 5 * 60 * 1000

    # --- Retry Policy Configuration ---
    # RETRY_MAX_ATTEMPTS - общее число попыток, включая первую.
    RETRY_ENABLED: bool = False
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_MS: int = 300
    RETRY_MAX_DELAY_MS: int = 10_000
    # 401/403 не ретраим никогда (это Auth, а не сбой)
    RETRY_NON_RETRYABLE_STATUSES: List[int] = [401, 403]

    # --- Network Monitor ---
    HEALTH_ENDPOINT: str = "/health"
    HEALTH_PROBE_INTERVAL: float = 30.0
    HEALTH_PROBE_TIMEOUT: float = 5.0

    # --- Persistent store namespaces ---
    OFFLINE_QUEUE_NAMESPACE: str = "offline_actions"
    TOKEN_NAMESPACE: str = "token"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def health_url(self) -> str:
        return self.API_BASE_URL.rstrip("/") + self.HEALTH_ENDPOINT


@lru_cache
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
