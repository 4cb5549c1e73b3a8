"""Request schemas for API endpoints."""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from api.models.job import CategoryStrategyEnum, ManualSchedule, Schedule, TopicStrategyEnum


def _unique(values: List[str], what: str) -> List[str]:
    if len(values) != len(set(values)):
        raise ValueError(f'Duplicate {what} in request')
    return values


class JobCreateRequest(BaseModel):
    """Request schema for job creation."""
    name: str = Field(..., min_length=1, max_length=200, description="Human readable job name")
    site_id: str = Field(..., description="Target site")
    prompt_id: str = Field(..., description="Prompt template used for generation")
    ai_provider_id: str = Field(..., description="AI provider used for generation")
    topic_strategy: TopicStrategyEnum = Field(default=TopicStrategyEnum.UNIQUE)
    category_strategy: CategoryStrategyEnum = Field(default=CategoryStrategyEnum.FIXED)
    categories: List[str] = Field(..., min_length=1, description="Candidate category IDs, in order")
    topics: List[str] = Field(default_factory=list, description="Candidate topic IDs, in order")
    requires_validation: bool = Field(default=False, description="Hold articles as drafts until approved")
    schedule: Schedule = Field(default_factory=ManualSchedule, discriminator="type")
    jitter_enabled: bool = Field(default=False)
    jitter_minutes: int = Field(default=0, ge=0, le=1440, description="Maximum random delay in minutes")
    placeholder_values: Dict[str, str] = Field(default_factory=dict, description="Prompt placeholder overrides")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject blank names."""
        v = v.strip()
        if not v:
            raise ValueError('Job name must not be blank')
        return v

    @field_validator('categories')
    @classmethod
    def validate_unique_categories(cls, v: List[str]) -> List[str]:
        return _unique(v, 'categories')

    @field_validator('topics')
    @classmethod
    def validate_unique_topics(cls, v: List[str]) -> List[str]:
        return _unique(v, 'topics')


class JobUpdateRequest(BaseModel):
    """Request schema for a partial job update; omitted fields are kept."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    prompt_id: Optional[str] = None
    ai_provider_id: Optional[str] = None
    topic_strategy: Optional[TopicStrategyEnum] = None
    category_strategy: Optional[CategoryStrategyEnum] = None
    categories: Optional[List[str]] = Field(None, min_length=1)
    topics: Optional[List[str]] = None
    requires_validation: Optional[bool] = None
    schedule: Optional[Schedule] = Field(None, discriminator="type")
    jitter_enabled: Optional[bool] = None
    jitter_minutes: Optional[int] = Field(None, ge=0, le=1440)
    placeholder_values: Optional[Dict[str, str]] = None

    @field_validator('categories')
    @classmethod
    def validate_unique_categories(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _unique(v, 'categories') if v is not None else v

    @field_validator('topics')
    @classmethod
    def validate_unique_topics(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _unique(v, 'topics') if v is not None else v
