"""Response schemas for API endpoints."""
from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from api.models.execution import ExecutionModel
from api.models.job import JobModel, JobStateModel, Schedule
from api.models.topic import TopicModel


class JobResponse(BaseModel):
    """Response schema for a job and its scheduling state."""
    job_id: str = Field(..., description="Unique job identifier")
    name: str
    site_id: str
    prompt_id: str
    ai_provider_id: str
    status: str = Field(..., description="active or paused")
    topic_strategy: str
    category_strategy: str
    categories: List[str]
    topics: List[str]
    requires_validation: bool
    schedule: Schedule = Field(..., discriminator="type")
    jitter_enabled: bool
    jitter_minutes: int
    placeholder_values: Dict[str, str] = Field(default_factory=dict)
    last_run_at: Optional[datetime] = Field(None, description="Start of the last run")
    next_run_at: Optional[datetime] = Field(None, description="Next planned run, if any")
    total_executions: int = 0
    failed_executions: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_models(cls, job: JobModel, state: Optional[JobStateModel] = None) -> "JobResponse":
        data = job.model_dump(exclude={"id"})
        data["job_id"] = job.id
        data["status"] = job.status.value
        data["topic_strategy"] = job.topic_strategy.value
        data["category_strategy"] = job.category_strategy.value
        if state is not None:
            data.update(
                last_run_at=state.last_run_at,
                next_run_at=state.next_run_at,
                total_executions=state.total_executions,
                failed_executions=state.failed_executions,
            )
        return cls(**data)


class JobActionResponse(BaseModel):
    """Response schema for pause, resume, trigger and delete."""
    job_id: str = Field(..., description="Unique job identifier")
    status: str = Field(..., description="Job status after the action")
    message: str = Field(..., description="What happened")


class ExecutionResponse(BaseModel):
    """Response schema for one execution."""
    execution_id: str = Field(..., description="Unique execution identifier")
    job_id: str
    site_id: str
    status: str
    topic_id: Optional[str] = None
    category_id: Optional[str] = None
    article_id: Optional[str] = None
    ai_model: Optional[str] = None
    error_message: Optional[str] = None
    generation_time_ms: int = 0
    tokens_used: int = 0
    cost_usd: float = 0.0
    started_at: datetime
    generated_at: Optional[datetime] = None
    validated_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, execution: ExecutionModel) -> "ExecutionResponse":
        data = execution.model_dump(exclude={"id", "prompt_id", "ai_provider_id"})
        data["execution_id"] = execution.id
        data["status"] = execution.status.value
        return cls(**data)


class TopicItem(BaseModel):
    """Schema for a topic in listings."""
    topic_id: str
    title: str
    parent_id: Optional[str] = None

    @classmethod
    def from_model(cls, topic: TopicModel) -> "TopicItem":
        return cls(topic_id=topic.id, title=topic.title, parent_id=topic.parent_id)


class RemainingTopicsResponse(BaseModel):
    """Response schema for the topics a job can still use."""
    job_id: str
    strategy: str
    count: int = Field(..., description="Number of selectable topics")
    topics: List[TopicItem] = Field(default_factory=list)


class JobMetricsResponse(BaseModel):
    """Response schema for job metrics."""
    job_id: str
    total_executions: int
    successful_executions: int
    failed_executions: int
    rejected_executions: int
    pending_validation: int
    average_generation_time_ms: float
    tokens_last_30_days: int
    cost_last_30_days: float


class ErrorResponse(BaseModel):
    """Schema for error responses."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Detailed error information")
