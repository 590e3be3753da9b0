# worktime/core/config.py
import os
from datetime import time
from typing import List, Optional

from pydantic import validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from .env"""

    # === Database ===
    DATABASE_URL: str = "sqlite+aiosqlite:///./worktime.db"
    DATABASE_TEST_URL: Optional[str] = None

    @validator("DATABASE_URL")
    def validate_database_url(cls, v):
        """Ensure database URL is safe for current environment"""
        env = os.getenv("ENVIRONMENT", "development").lower()
        if env == "production" and "localhost" in v:
            raise ValueError("🚨 Production environment cannot use localhost database!")
        return v

    # === Redis / Celery ===
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # === JWT ===
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # === CORS ===
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    ALLOWED_METHODS: List[str] = ["*"]
    ALLOWED_HEADERS: List[str] = ["*"]

    # === System ===
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    TIMEZONE: str = "Asia/Dhaka"

    # === Shift fallback (used when no shift is configured at all) ===
    FALLBACK_SHIFT_START: time = time(9, 0)
    FALLBACK_SHIFT_DURATION_MINUTES: int = 540
    FALLBACK_GRACE_MINUTES: int = 0
    FALLBACK_BREAK_MINUTES: int = 60

    # === Recovery sweeps ===
    ABSENCE_SWEEP_HOUR: int = 12
    ABSENCE_SWEEP_MINUTE: int = 0
    STUCK_SESSION_SWEEP_HOUR: int = 23
    STUCK_SESSION_SWEEP_MINUTE: int = 59
    SWEEP_TIME_BUDGET_SECONDS: int = 900
    ABSENCE_SWEEP_ROLES: List[str] = ["employee", "manager"]

    # === Business Rules ===
    MANUAL_ENTRY_REAGGREGATE: bool = True
    AGGREGATION_LOCK_BACKEND: str = "local"  # 'local' | 'redis'
    AGGREGATION_LOCK_TIMEOUT_SECONDS: int = 30

    @validator("AGGREGATION_LOCK_BACKEND")
    def validate_lock_backend(cls, v):
        if v not in ("local", "redis"):
            raise ValueError("AGGREGATION_LOCK_BACKEND must be 'local' or 'redis'")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# Create a global settings instance
settings = Settings()
