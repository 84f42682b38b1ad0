from pydantic_settings import BaseSettings
from typing import Optional, List
import os

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "NutriClinic"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    TESTING: bool = os.getenv("TESTING", "0").lower() in ("1", "true", "t", "yes", "y")
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://localhost:5432/nutriclinic_db"
    )
    TEST_DATABASE_URL: str = os.getenv(
        "TEST_DATABASE_URL",
        "sqlite://"
    )

    # Security
    SECRET_KEY: str = "change-this-secret-key-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    MAX_FAILED_LOGINS: int = 5
    LOCKOUT_MINUTES: int = 30

    # Redis (rate limiting)
    REDIS_URL: str = "redis://localhost:6379"
    RATE_LIMIT_MAX_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 3600

    # File storage buckets
    STORAGE_ROOT: str = "./storage"
    STORAGE_PUBLIC_URL: str = "http://localhost:8000/storage"

    # Scheduling
    APPOINTMENT_DURATION_MINUTES: int = 50
    FIRST_VISIT_PRICE: float = 250.0
    FOLLOW_UP_PRICE: float = 180.0

    # Outbox (audit logs, notifications)
    OUTBOX_MAX_ATTEMPTS: int = 3
    OUTBOX_BATCH_SIZE: int = 100

    # Administration
    ADMIN_EMAIL_DOMAIN: str = "admin.nutriclinic.com"
    SUPERADMIN_EMAIL: Optional[str] = None
    SUPERADMIN_PASSWORD: Optional[str] = None

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173", "http://testserver"]

    @property
    def get_database_url(self):
        """Return the appropriate database URL based on if we're testing"""
        if self.TESTING:
            return self.TEST_DATABASE_URL
        return self.DATABASE_URL

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()
