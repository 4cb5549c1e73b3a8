# Models module
from .job import (
    JobModel,
    JobStateModel,
    JobStatusEnum,
    TopicStrategyEnum,
    CategoryStrategyEnum,
    IntervalUnitEnum,
    ManualSchedule,
    OnceSchedule,
    IntervalSchedule,
    DailySchedule,
    Schedule,
)
from .execution import ExecutionModel, ExecutionStatusEnum
from .article import ArticleModel, ArticleStatusEnum
from .topic import TopicModel
from .site import SiteModel, CategoryModel, PromptModel, AIProviderModel

__all__ = [
    "JobModel", "JobStateModel", "JobStatusEnum", "TopicStrategyEnum",
    "CategoryStrategyEnum", "IntervalUnitEnum", "ManualSchedule", "OnceSchedule",
    "IntervalSchedule", "DailySchedule", "Schedule",
    "ExecutionModel", "ExecutionStatusEnum",
    "ArticleModel", "ArticleStatusEnum",
    "TopicModel",
    "SiteModel", "CategoryModel", "PromptModel", "AIProviderModel",
]
