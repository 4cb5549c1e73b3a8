"""Execution model definitions."""
from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class ExecutionStatusEnum(str, Enum):
    """Execution lifecycle status."""
    PENDING = "pending"
    GENERATING = "generating"
    PENDING_VALIDATION = "pending_validation"
    VALIDATED = "validated"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    REJECTED = "rejected"
    FAILED = "failed"


class ExecutionModel(BaseModel):
    """One pipeline run of a job."""
    id: str = Field(alias="_id")
    job_id: str
    site_id: str
    topic_id: Optional[str] = None
    category_id: Optional[str] = None
    prompt_id: Optional[str] = None
    ai_provider_id: Optional[str] = None
    ai_model: Optional[str] = None
    article_id: Optional[str] = None
    status: ExecutionStatusEnum = ExecutionStatusEnum.PENDING
    error_message: Optional[str] = None
    generation_time_ms: int = 0
    tokens_used: int = 0
    cost_usd: float = 0.0
    started_at: datetime
    generated_at: Optional[datetime] = None
    validated_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
