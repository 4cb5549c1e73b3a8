"""Shared utility functions."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional


def _generate_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def generate_job_id() -> str:
    """Generate a unique job ID."""
    return _generate_id("job")


def generate_execution_id() -> str:
    """Generate a unique execution ID."""
    return _generate_id("exec")


def generate_article_id() -> str:
    """Generate a unique article ID."""
    return _generate_id("art")


def generate_topic_id() -> str:
    """Generate a unique topic ID."""
    return _generate_id("topic")


def get_utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime to ISO format string."""
    if dt is None:
        return None
    return dt.isoformat()


def count_words(text: str) -> int:
    """Count whitespace-separated words."""
    return len(text.split())


def calculate_exponential_backoff(attempt: int, base_delay: float = 1.0, max_delay: float = 60.0) -> float:
    """Calculate exponential backoff delay."""
    delay = base_delay * (2 ** attempt)
    return min(delay, max_delay)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for a process entry point."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
