from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "GEO Diagnosis API"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True
    DEFAULT_LANGUAGE: Literal["ja", "en"] = "ja"

    # ── Database ────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./geodiag.db"

    # ── Scoring oracle (OpenAI-compatible gateway) ─
    OPENROUTER_API_KEY: Optional[str] = None
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    FREE_MODEL: str = "anthropic/claude-haiku-4.5"
    PRO_MODEL: str = "anthropic/claude-sonnet-4.5"
    ORACLE_TIMEOUT_SECONDS: float = 90.0
    ORACLE_MAX_TOKENS: int = 2000

    # ── Rendering ───────────────────────────────
    CHROMEDRIVER_PATH: Optional[str] = None
    RENDER_TIMEOUT_SECONDS: int = 30
    VIEWPORT_WIDTH: int = 1280
    VIEWPORT_HEIGHT: int = 800
    SCREENSHOT_QUALITY: int = 80

    # ── Identity provider ───────────────────────
    IDENTITY_JWT_SECRET: str = "your-secret-key-change-this-in-production"
    IDENTITY_JWT_ALGORITHM: str = "HS256"
    IDENTITY_JWT_AUDIENCE: Optional[str] = "authenticated"

    # ── Usage / credits ─────────────────────────
    FREE_CREDITS_PER_PERIOD: int = 3
    PRO_MONTHLY_LIMIT: int = 100
    USAGE_PERIOD_DAYS: int = 30

    # ── Rate limiting ───────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    FORCE_IN_MEMORY_RATE_LIMITER: bool = False
    RATE_LIMITS: Dict[str, int] = {"/api/v1/diagnose": 10}
    WHITELIST_IPS: List[str] = []

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
