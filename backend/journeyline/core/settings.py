from pathlib import Path
from typing import Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Database
    DB_URL: str = "postgresql://postgres:password@db:5432/journeydb"
    DB_ECHO: bool = False  # Set to True for SQL query logging in development
    DB_CREATE_TABLES: bool = False  # create_all at startup (dev / tests only)

    # Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Number of connections to maintain in pool
    DB_MAX_OVERFLOW: int = 20  # Maximum overflow connections beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Timeout in seconds to get connection from pool
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour

    # Timeline
    CIVIL_TIMEZONE: str = "Asia/Ho_Chi_Minh"  # all day bucketing happens here
    MAX_JOURNEY_DAYS: int = 90
    DEFAULT_ACTIVITY_TYPE: str = "poi"

    # Rate Limiting
    ENABLE_RATE_LIMITING: bool = True
    RATE_LIMIT_MATERIALIZE: str = "10/minute"
    RATE_LIMIT_READ: str = "60/minute"
    RATE_LIMIT_WRITE: str = "30/minute"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "app.log"

    # CORS
    ALLOWED_ORIGINS: Union[list, str] = ["http://localhost:3000", "http://localhost:3001"]

    @field_validator('ALLOWED_ORIGINS', mode='before')
    @classmethod
    def parse_allowed_origins(cls, v):
        """Parse ALLOWED_ORIGINS from comma-separated string or list"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator('CIVIL_TIMEZONE')
    @classmethod
    def validate_civil_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown IANA timezone: {v}")
        return v

    @field_validator('MAX_JOURNEY_DAYS')
    @classmethod
    def validate_max_days(cls, v: int) -> int:
        if v < 1:
            raise ValueError('MAX_JOURNEY_DAYS must be at least 1')
        return v

    # Security
    JWT_SECRET: str = "change_me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parents[3] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def rate_limit(self, limit: str) -> str:
        """Effective slowapi limit string, relaxed when limiting is disabled"""
        return limit if self.ENABLE_RATE_LIMITING else "1000/minute"
