"""Job model definitions."""
from enum import Enum
from typing import List, Optional, Dict, Union, Literal
from datetime import datetime
from pydantic import BaseModel, Field


class JobStatusEnum(str, Enum):
    """Job status enumeration."""
    ACTIVE = "active"
    PAUSED = "paused"


class TopicStrategyEnum(str, Enum):
    """Topic selection strategy."""
    UNIQUE = "unique"
    VARIATION = "variation"


class CategoryStrategyEnum(str, Enum):
    """Category selection strategy."""
    FIXED = "fixed"
    RANDOM = "random"
    ROTATE = "rotate"


class IntervalUnitEnum(str, Enum):
    """Units accepted by interval schedules."""
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"


class ManualSchedule(BaseModel):
    """Runs only on explicit trigger."""
    type: Literal["manual"] = "manual"


class OnceSchedule(BaseModel):
    """Runs a single time at a fixed moment."""
    type: Literal["once"] = "once"
    execute_at: datetime


class IntervalSchedule(BaseModel):
    """Runs every `value` `unit` after the previous run."""
    type: Literal["interval"] = "interval"
    value: int
    unit: IntervalUnitEnum = IntervalUnitEnum.HOURS


class DailySchedule(BaseModel):
    """Runs at hour:minute on the given weekdays (ISO numbering, 0 and 7 are Sunday)."""
    type: Literal["daily"] = "daily"
    hour: int
    minute: int = 0
    weekdays: List[int] = Field(default_factory=list)


Schedule = Union[ManualSchedule, OnceSchedule, IntervalSchedule, DailySchedule]


class JobModel(BaseModel):
    """Job model for database representation."""
    id: str = Field(alias="_id")
    name: str
    site_id: str
    prompt_id: str
    ai_provider_id: str
    topic_strategy: TopicStrategyEnum = TopicStrategyEnum.UNIQUE
    category_strategy: CategoryStrategyEnum = CategoryStrategyEnum.FIXED
    categories: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    requires_validation: bool = False
    schedule: Schedule = Field(default_factory=ManualSchedule, discriminator="type")
    jitter_enabled: bool = False
    jitter_minutes: int = 0
    placeholder_values: Dict[str, str] = Field(default_factory=dict)
    status: JobStatusEnum = JobStatusEnum.ACTIVE
    created_at: datetime
    updated_at: datetime

    class Config:
        populate_by_name = True


class JobStateModel(BaseModel):
    """Per-job scheduling state, keyed by the job id."""
    job_id: str = Field(alias="_id")
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    total_executions: int = 0
    failed_executions: int = 0
    last_category_index: int = 0

    class Config:
        populate_by_name = True
