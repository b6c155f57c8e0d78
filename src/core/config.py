from pydantic_settings import BaseSettings
from functools import lru_cache
from decimal import Decimal



class Settings(BaseSettings):
    # -----------------------------
    # Database
    # -----------------------------
    DATABASE_URL: str
    SQL_ECHO: bool = False

    # -----------------------------
    # Identity provider tokens
    # -----------------------------
    SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # -----------------------------
    # VTU provider (Payflex)
    # -----------------------------
    VTU_BASE_URL: str = "https://api.payflexng.com/v1"
    VTU_API_KEY: str = ""
    VTU_TIMEOUT_SECONDS: int = 30
    DATA_PLAN_MARGIN: Decimal = Decimal("0.05")

    # -----------------------------
    # Message broker
    # -----------------------------
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # -----------------------------
    # Scheduled top-ups
    # -----------------------------
    SCHEDULE_TIMEZONE: str = "Africa/Lagos"
    SCHEDULE_BATCH_SIZE: int = 50
    SCHEDULE_RUNNER_INTERVAL_SECONDS: int = 60
    SCHEDULE_CLAIM_TIMEOUT_MINUTES: int = 15
    RECONCILIATION_INTERVAL_SECONDS: int = 300
    PENDING_TRANSACTION_TIMEOUT_MINUTES: int = 30

    # -----------------------------
    # Wallet limits (NGN)
    # -----------------------------
    MIN_AIRTIME_AMOUNT: Decimal = Decimal("50")
    MAX_AIRTIME_AMOUNT: Decimal = Decimal("50000")
    MIN_WALLET_FUNDING: Decimal = Decimal("5000")
    MAX_WALLET_BALANCE: Decimal = Decimal("8000000")

    # -----------------------------
    # App Environment
    # -----------------------------
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "info"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance to avoid reloading .env repeatedly"""
    return Settings()


settings = get_settings()
