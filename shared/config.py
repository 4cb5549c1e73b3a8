"""Shared configuration for all services."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Redis Configuration
    redis_url: str = "redis://localhost:6379"
    redis_trigger_queue: str = "job_triggers"
    redis_result_channel: str = "job_updates"

    # MongoDB Configuration
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db_name: str = "content_engine"

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False

    # Scheduler Configuration
    scheduler_poll_interval: float = 30.0
    scheduler_max_concurrency: int = 5
    scheduler_timezone: str = "UTC"
    missed_run_delay_min: int = 1
    missed_run_delay_max: int = 5
    shutdown_timeout: float = 60.0

    # Pipeline Configuration
    pipeline_timeout: float = 180.0
    min_word_count: int = 100

    # Collaborators
    ai_request_timeout: float = 120.0
    ai_max_tokens: int = 8192
    publisher_timeout: int = 30
    publisher_max_retries: int = 3
    retry_base_delay: float = 1.0

    # Logging
    log_level: str = "INFO"

    # WebSocket Configuration
    ws_heartbeat_interval: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
