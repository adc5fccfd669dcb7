"""
VaxSync Configuration
Core settings for the VaxSync inventory service
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pathlib import Path


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application Info
    APP_NAME: str = "VaxSync Inventory API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./vaxsync.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # CORS
    CORS_ORIGINS: list = [
        "http://localhost:3000",  # Next.js frontend
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "vaxsync.log"
    ERROR_LOG_FILE: str = "error.log"
    LOG_TO_FILE: bool = False

    # Inventory Rules
    LOW_STOCK_THRESHOLD: int = 5  # vials
    STRICT_RESERVATIONS: bool = False

    # Reference tables (vial mapping, NIP monthly needs, max allocation)
    REFERENCE_TABLES_FILE: Optional[Path] = None

    # Monthly rollup scheduling
    MONTHLY_REPORT_CRON: str = "0 1 1 * *"  # 01:00 on the first of each month
    ENABLE_REPORT_SCHEDULER: bool = False
    EXPORT_DIR: Path = Path("exports")

    # API Configuration
    API_V1_STR: str = "/api/v1"
    DOCS_URL: str = "/docs"
    OPENAPI_URL: str = "/openapi.json"

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case level names from the environment"""
        return v.upper()

    @field_validator("LOW_STOCK_THRESHOLD")
    @classmethod
    def check_threshold(cls, v: int) -> int:
        if v < 0:
            raise ValueError("LOW_STOCK_THRESHOLD must not be negative")
        return v


# Global settings instance
settings = Settings()
