"""
Application Configuration
"""
from pydantic_settings import BaseSettings
from typing import List
import warnings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Fixed Asset Ledger API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./assetledger.db"
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 15.0

    # CORS
    CORS_ORIGINS: str = "http://localhost:5000,http://127.0.0.1:5000"

    # Ledger accounts used when an asset does not name its own
    DEFAULT_ASSET_ACCOUNT: str = "1500"
    DEFAULT_ACCUMULATED_DEPRECIATION_ACCOUNT: str = "1590"
    DEFAULT_DEPRECIATION_EXPENSE_ACCOUNT: str = "6100"
    DEFAULT_DISPOSAL_PROCEEDS_ACCOUNT: str = "1000"
    DEFAULT_DISPOSAL_GAIN_LOSS_ACCOUNT: str = "7900"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def database_url(self) -> str:
        """Get properly formatted database URL"""
        url = self.DATABASE_URL
        # Fix common URL format issues
        if url.startswith("file:"):
            # Convert file: URL to SQLite URL
            path = url[5:]  # Remove 'file:' prefix
            return f"sqlite:///{path}"
        return url

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.ENVIRONMENT.lower() == "production"

    def validate_runtime_settings(self):
        """Validate settings and warn about unsafe defaults"""
        if self.is_production and self.DEBUG:
            raise ValueError(
                "CRITICAL: DEBUG mode is enabled in production! "
                "Set DEBUG=False for production environment."
            )

        # Posting and period locks rely on database-level constraints shared
        # by every service instance; a local sqlite file is single-host only.
        if self.is_production and self.database_url.startswith("sqlite"):
            warnings.warn(
                "WARNING: sqlite database configured in production. "
                "Period locks are only enforced across instances sharing one database.",
                UserWarning
            )

        return True

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

# Validate settings on import (but don't crash in development)
try:
    settings.validate_runtime_settings()
except ValueError as e:
    if settings.is_production:
        raise
    else:
        warnings.warn(str(e), UserWarning)
