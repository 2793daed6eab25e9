"""
Application configuration using Pydantic Settings
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Engine settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Control API
    API_KEY: Optional[str] = None
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Durable stores (message store and dead letter records live below this)
    DATA_DIR: str = "data"

    # Wire Tap / Message Store
    WIRE_TAP_ENABLED: bool = True
    WIRE_TAP_LOG_MESSAGES: bool = False
    MESSAGE_STORE_MAX_MESSAGES: int = 1000
    MESSAGE_STORE_PERSIST: bool = True

    # Dead Letter Channel
    DEAD_LETTER_PERSIST: bool = True

    # Control Bus
    CONTROL_BUS_RETENTION_SECONDS: float = 60.0
    CONTROL_BUS_SWEEP_INTERVAL_SECONDS: float = 15.0

    # Relational sources
    SOURCE_RECONNECT_DELAY_SECONDS: float = 1.0
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT_SECONDS: float = 30.0
    DB_POOL_RECYCLE_SECONDS: int = 1800

    # HTTP sinks
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Guaranteed delivery defaults
    MAX_RETRIES: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 1.0
    RETRY_MAX_DELAY_SECONDS: float = 30.0

    # Scheduler
    SCHEDULER_TIMEZONE: str = "UTC"


settings = Settings()
