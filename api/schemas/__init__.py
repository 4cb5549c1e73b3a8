# Schemas module
from .requests import JobCreateRequest, JobUpdateRequest
from .responses import (
    JobResponse,
    JobActionResponse,
    ExecutionResponse,
    TopicItem,
    RemainingTopicsResponse,
    JobMetricsResponse,
    ErrorResponse
)

__all__ = [
    "JobCreateRequest",
    "JobUpdateRequest",
    "JobResponse",
    "JobActionResponse",
    "ExecutionResponse",
    "TopicItem",
    "RemainingTopicsResponse",
    "JobMetricsResponse",
    "ErrorResponse"
]
