from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

REPO_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = REPO_ROOT / ".env"

SERVICE_NAME = "routing-matrix"
SERVICE_VERSION = "0.1.0"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE), env_file_encoding="utf-8", extra="ignore"
    )

    # whether to expose the dev cache endpoints
    DEBUG: bool = False
    DEV_ROUTES_ENABLED: bool = False

    # CORS allow origins (comma-separated). Default empty (no cross-origin).
    CORS_ALLOW_ORIGINS: str = ""

    # Upstream router
    OSRM_BASE_URL: str = "https://router.project-osrm.org"
    OSRM_TIMEOUT_SECONDS: float = 10.0
    OSRM_CACHE_TTL_SECONDS: int = 300  # 0 disables the pair cache
    OSRM_CACHE_MAX_ENTRIES: int = 10_000
    HEADING_TOLERANCE_DEGREES: int = 100

    # Matrix fan-out
    MATRIX_MAX_WORKERS: int = 1  # 1 = sequential dispatch
    MATRIX_COPYRIGHTS: str = "OSRM,OpenStreetMap contributors"

    # Circuit breaker around router transport
    CIRCUIT_BREAKER_ENABLED: bool = True
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_COOLDOWN_SECONDS: float = 30.0

    # Observability
    SENTRY_DSN: str | None = None
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_RELEASE: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.2

    @property
    def allow_origins(self) -> list[str]:
        s = (self.CORS_ALLOW_ORIGINS or "").strip()
        if s == "*":
            return ["*"]
        if s == "":
            return []
        return [part.strip() for part in s.split(",") if part.strip()]

    @property
    def copyrights(self) -> list[str]:
        return [part.strip() for part in self.MATRIX_COPYRIGHTS.split(",") if part.strip()]

    @property
    def osrm_base(self) -> str:
        base = self.OSRM_BASE_URL.strip().rstrip("/")
        if not base.startswith(("http://", "https://")):
            base = f"http://{base}"
        return base


settings = Settings()
