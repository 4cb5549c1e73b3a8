"""Collaborator interfaces and the explicit dependency bundle of the engine."""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from api.models.article import ArticleModel
from api.models.site import AIProviderModel, SiteModel
from shared.config import Settings


@dataclass
class GenerationResult:
    """Output of one article generation."""
    title: str
    excerpt: str
    content: str
    tokens_used: int = 0
    cost_usd: float = 0.0
    model: str = ""


class AIGenerator(Protocol):
    """Protocol for AI backends (OpenAI, Anthropic)."""

    async def generate_article(self, system_prompt: str, user_prompt: str) -> GenerationResult:
        """Generate an article from rendered prompts."""
        ...

    async def generate_topic_variations(self, seed_title: str, count: int) -> List[str]:
        """Generate `count` fresh titles derived from `seed_title`."""
        ...

    async def close(self) -> None:
        """Release the backend client."""
        ...


class RemotePublisher(Protocol):
    """Protocol for the remote content-management site."""

    async def create_post(
        self,
        site: SiteModel,
        article: ArticleModel,
        status: str,
        categories: Optional[List[int]] = None
    ) -> int:
        """Create a post and return its remote id."""
        ...

    async def update_post(self, site: SiteModel, article: ArticleModel, status: str = "publish") -> None:
        """Update an existing post (by `article.remote_post_id`)."""
        ...


class PromptRendererProtocol(Protocol):
    async def render(self, prompt_id: str, placeholders: Dict[str, str]) -> Tuple[str, str]:
        ...


class StatsRecorder(Protocol):
    async def record_article_published(self, site_id: str, word_count: int) -> None:
        ...

    async def record_article_failed(self, site_id: str) -> None:
        ...


class EventSink(Protocol):
    async def publish(self, event_type: str, job_id: str, **payload: Any) -> None:
        ...


# Builds an AI generator for a provider configuration
GeneratorFactory = Callable[[AIProviderModel], AIGenerator]


@dataclass
class EngineDependencies:
    """Everything the pipeline, scheduler and execution service need."""
    jobs: Any
    states: Any
    executions: Any
    articles: Any
    topics: Any
    sites: Any
    categories: Any
    providers: Any
    prompts: PromptRendererProtocol
    generator_factory: GeneratorFactory
    publisher: RemotePublisher
    stats: StatsRecorder
    events: EventSink
    settings: Settings = field(default_factory=Settings)
    trigger_source: Optional[Any] = None
