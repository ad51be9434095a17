"""Application settings loaded from the environment (and .env when present)."""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    ENV: str = os.getenv("ENV", "development")
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # ── Database ───────────────────────────────────────────────────────────
    DATABASE_URL: str = (
        os.getenv("DATABASE_URL")
        or os.getenv("POSTGRESQL_URL")
        or "sqlite+aiosqlite:///./league_of_graphs.db"
    )
    DATABASE_SSL: bool = _env_bool("DATABASE_SSL", "false")
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "5"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    DB_AUTO_CREATE: bool = _env_bool("DB_AUTO_CREATE", "true")

    # Upper bound (seconds) for recording a match and its aggregates
    STATS_TX_TIMEOUT: float = float(os.getenv("STATS_TX_TIMEOUT", "3"))

    # ── Rate limiter (token bucket per client IP) ─────────────────────────
    LIMITER_ENABLED: bool = _env_bool("LIMITER_ENABLED", "true")
    LIMITER_RPS: float = float(os.getenv("LIMITER_RPS", "2"))
    LIMITER_BURST: int = int(os.getenv("LIMITER_BURST", "4"))

    CORS_TRUSTED_ORIGINS: list[str] = os.getenv("CORS_TRUSTED_ORIGINS", "").split()

    # ── Accounts ───────────────────────────────────────────────────────────
    PASSWORD_HASH_ITERATIONS: int = int(os.getenv("PASSWORD_HASH_ITERATIONS", "390000"))
    ACTIVATION_TOKEN_TTL_HOURS: int = 72
    AUTH_TOKEN_TTL_HOURS: int = 24


settings = Settings()
