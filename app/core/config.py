"""Application configuration settings."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_default_database_url() -> str:
    """Get the default database URL, using the mounted volume path if available."""
    if os.path.isdir("/data"):
        return "sqlite:////data/meter_reading.db"
    return "sqlite:///./meter_reading.db"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    PROJECT_NAME: str = "Meter Reading"
    VERSION: str = "0.1.0"
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Database - defaults to the volume path if /data exists
    DATABASE_URL: str = _get_default_database_url()

    # Reading assignments
    ASSIGNMENT_DUE_DAY: int = 15  # Default end date falls on this day of the start month
    AUTO_COMPLETE_ASSIGNMENTS: bool = True
    METER_CODE_SEPARATOR: str = "-"


settings = Settings()
