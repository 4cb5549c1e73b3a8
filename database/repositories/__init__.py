# Repositories module
from .job_repo import JobRepository
from .state_repo import JobStateRepository
from .execution_repo import ExecutionRepository
from .article_repo import ArticleRepository
from .topic_repo import TopicRepository
from .site_repo import SiteRepository, CategoryRepository
from .prompt_repo import PromptRepository, AIProviderRepository
from .stats_repo import SiteStatsRepository

__all__ = [
    "JobRepository",
    "JobStateRepository",
    "ExecutionRepository",
    "ArticleRepository",
    "TopicRepository",
    "SiteRepository",
    "CategoryRepository",
    "PromptRepository",
    "AIProviderRepository",
    "SiteStatsRepository",
]
