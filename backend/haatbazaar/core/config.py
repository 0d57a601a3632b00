# haatbazaar/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator
from pathlib import Path
from loguru import logger
from typing import Optional, List
import sys


class Settings(BaseSettings):
    # --- Core App Settings ---
    APP_NAME: str = "HaatBazaar Backend"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"
    # Generate a strong secret: openssl rand -hex 32
    SECRET_KEY: str = Field(..., description="Secret key for JWT signing - REQUIRED")

    # --- Authentication ---
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    RATE_LIMIT_AUTH: str = "20/minute"
    RATE_LIMIT_ENABLED: bool = True
    ALLOW_ADMIN_REGISTRATION: bool = False

    # --- CORS ---
    # Comma-separated, e.g. "http://localhost:8081,https://app.example.com"
    ALLOWED_ORIGINS: str = Field("*", description="Allowed CORS origins. Use '*' for dev ONLY.")
    CORS_ORIGINS: List[str] = []

    # --- Database (MongoDB) ---
    MONGODB_URI: str = Field(..., description="MongoDB connection string - REQUIRED")
    MONGO_DB_NAME: Optional[str] = None  # Derived from URI if not set

    # --- Redis (realtime fan-out, Celery broker/backend) ---
    REDIS_URL: Optional[str] = None

    # --- Celery ---
    CELERY_BROKER_URL: Optional[str] = None  # Derived from REDIS_URL (DB 1) if not set
    CELERY_RESULT_BACKEND: Optional[str] = None  # Derived from REDIS_URL (DB 2) if not set
    NEGOTIATION_SWEEP_INTERVAL_SECONDS: int = 15 * 60

    # --- Audit Log Settings ---
    AUDIT_LOG_ENABLED: bool = True
    AUDIT_LOG_MONGO_COLLECTION: str = "audit_logs"

    # --- Marketplace rules ---
    DELIVERY_SURCHARGE: float = 50.0
    # Ledger deductions left by an attempt older than this are treated as abandoned
    INVENTORY_RECOVERY_GRACE_SECONDS: int = 60
    INVENTORY_SWEEP_INTERVAL_SECONDS: int = 5 * 60
    INVENTORY_SWEEP_LOOKBACK_HOURS: int = 24
    NEGOTIATION_TTL_HOURS: int = 72
    BULK_BUY_THRESHOLD_KG: float = 10.0
    NEARBY_DISTANCE_KM: float = 50.0
    PRODUCT_AUTO_APPROVE_HOURS: int = 24

    # --- eSewa ---
    ESEWA_PRODUCT_CODE: str = "EPAYTEST"
    ESEWA_SECRET_KEY: str = "8gBm/:&EnhH.1/q"
    ESEWA_FORM_URL: str = "https://rc-epay.esewa.com.np/api/epay/main/v2/form"
    ESEWA_STATUS_URL: str = "https://rc.esewa.com.np/api/epay/transaction/status/"
    ESEWA_SUCCESS_URL: str = "http://localhost:8000/api/orders/esewa/success"
    ESEWA_FAILURE_URL: str = "http://localhost:8000/api/orders/esewa/failure"
    ESEWA_STATUS_TIMEOUT_SECONDS: float = 10.0

    # --- Notification outbox ---
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    PUSH_TIMEOUT_SECONDS: float = 10.0
    OUTBOX_ENABLED: bool = True
    OUTBOX_POLL_INTERVAL_SECONDS: float = 2.0
    OUTBOX_BATCH_SIZE: int = 50
    OUTBOX_MAX_ATTEMPTS: int = 5
    OUTBOX_RETRY_BASE_SECONDS: float = 5.0
    OUTBOX_LEASE_SECONDS: float = 60.0

    # --- Server ---
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = False

    model_config = SettingsConfigDict(
        env_file=str(Path.cwd() / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode='after')
    def process_and_validate(self) -> 'Settings':
        # Derive DB name if needed
        if self.MONGO_DB_NAME is None and self.MONGODB_URI:
            db_name = self.MONGODB_URI.rsplit('/', 1)[-1].split('?')[0] if self.MONGODB_URI.count('/') >= 3 else ""
            self.MONGO_DB_NAME = db_name or "haatbazaar"

        # Derive Celery URLs if needed
        if self.REDIS_URL:
            base = self.REDIS_URL.rsplit('/', 1)[0] if self.REDIS_URL.count('/') >= 3 else self.REDIS_URL
            if self.CELERY_BROKER_URL is None:
                self.CELERY_BROKER_URL = f"{base}/1"
            if self.CELERY_RESULT_BACKEND is None:
                self.CELERY_RESULT_BACKEND = f"{base}/2"

        if not self.SECRET_KEY: raise ValueError("SECRET_KEY environment variable is required.")
        if not self.MONGODB_URI: raise ValueError("MONGODB_URI environment variable is required.")
        if self.OUTBOX_MAX_ATTEMPTS < 1: raise ValueError("OUTBOX_MAX_ATTEMPTS must be at least 1.")

        # Convert comma-separated origins to list
        self.CORS_ORIGINS = [o.strip() for o in self.ALLOWED_ORIGINS.split(',') if o.strip()]

        return self

    @property
    def redis_display(self) -> str:
        if not self.REDIS_URL:
            return "disabled"
        return self.REDIS_URL.split('@')[-1]


# --- Global Settings Instance ---
try:
    settings = Settings()
    logger.info(f"Settings loaded for {settings.APP_NAME}")
    logger.info(f"Log Level: {settings.LOG_LEVEL}")
    logger.info(f"MongoDB DB: {settings.MONGO_DB_NAME}")
    logger.info(f"Redis: {settings.redis_display}")
    logger.info(f"CORS Origins: {settings.CORS_ORIGINS}")
    logger.info(f"Audit Log: {'Enabled' if settings.AUDIT_LOG_ENABLED else 'Disabled'}")
    logger.info(f"Notification Outbox: {'Enabled' if settings.OUTBOX_ENABLED else 'Disabled'}")
except ValueError as e:
    logger.critical(f"CONFIGURATION ERROR: {e}")
    sys.exit(f"Configuration Error: {e}")
