"""Pytest configuration and fixtures."""
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest
from unittest.mock import MagicMock, AsyncMock

from api.models import (
    AIProviderModel,
    ArticleModel,
    CategoryModel,
    ExecutionModel,
    ExecutionStatusEnum,
    IntervalSchedule,
    JobModel,
    JobStateModel,
    JobStatusEnum,
    PromptModel,
    SiteModel,
    TopicModel,
)
from engine.dependencies import EngineDependencies, GenerationResult
from engine.prompts import PromptRenderer
from shared.config import Settings


NOW = datetime(2024, 2, 6, 10, 0, tzinfo=timezone.utc)  # a Tuesday


# In-memory stores

class FakeJobStore:
    def __init__(self, states: "FakeStateStore"):
        self.items: Dict[str, JobModel] = {}
        self.states = states

    async def create(self, job):
        self.items[job.id] = job.model_copy(deep=True)
        return job

    async def get(self, job_id):
        job = self.items.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def list(self, status=None, site_id=None, limit=50, skip=0):
        jobs = [
            job for job in self.items.values()
            if (status is None or job.status.value == status)
            and (site_id is None or job.site_id == site_id)
        ]
        return [job.model_copy(deep=True) for job in jobs[skip:skip + limit]]

    async def get_active(self):
        return [job.model_copy(deep=True) for job in self.items.values() if job.status == JobStatusEnum.ACTIVE]

    async def get_due(self, before):
        due = []
        for job in self.items.values():
            state = self.states.items.get(job.id)
            if job.status != JobStatusEnum.ACTIVE or state is None or state.next_run_at is None:
                continue
            if state.next_run_at <= before:
                due.append((state.next_run_at, job.model_copy(deep=True)))
        return [job for _, job in sorted(due, key=lambda item: item[0])]

    async def update(self, job):
        self.items[job.id] = job.model_copy(deep=True)
        return True

    async def update_status(self, job_id, status):
        if job_id not in self.items:
            return False
        self.items[job_id].status = JobStatusEnum(status)
        return True

    async def delete(self, job_id):
        return self.items.pop(job_id, None) is not None


class FakeStateStore:
    def __init__(self):
        self.items: Dict[str, JobStateModel] = {}

    async def create(self, job_id):
        self.items[job_id] = JobStateModel(job_id=job_id)
        return self.items[job_id].model_copy()

    async def get(self, job_id):
        state = self.items.get(job_id)
        return state.model_copy() if state else None

    async def update_next_run(self, job_id, next_run):
        self.items[job_id].next_run_at = next_run
        return True

    async def update_last_run(self, job_id, last_run):
        self.items[job_id].last_run_at = last_run
        return True

    async def increment_executions(self, job_id, failed=False):
        self.items[job_id].total_executions += 1
        if failed:
            self.items[job_id].failed_executions += 1
        return True

    async def update_category_index(self, job_id, index):
        self.items[job_id].last_category_index = index
        return True

    async def delete(self, job_id):
        return self.items.pop(job_id, None) is not None


class FakeExecutionStore:
    def __init__(self):
        self.items: Dict[str, ExecutionModel] = {}

    async def create(self, execution):
        self.items[execution.id] = execution.model_copy()
        return execution

    async def get(self, execution_id):
        execution = self.items.get(execution_id)
        return execution.model_copy() if execution else None

    async def update(self, execution):
        self.items[execution.id] = execution.model_copy()
        return True

    async def list_by_job(self, job_id, limit=50, offset=0):
        executions = sorted(
            (e for e in self.items.values() if e.job_id == job_id),
            key=lambda e: e.started_at,
            reverse=True
        )
        return executions[offset:offset + limit]

    async def get_pending_validation(self, limit=100):
        return [
            e for e in self.items.values() if e.status == ExecutionStatusEnum.PENDING_VALIDATION
        ][:limit]

    async def count_by_job(self, job_id, status=None):
        return len([
            e for e in self.items.values()
            if e.job_id == job_id and (status is None or e.status == status)
        ])

    async def get_average_generation_time(self, job_id):
        times = [e.generation_time_ms for e in self.items.values() if e.job_id == job_id and e.generation_time_ms > 0]
        return sum(times) / len(times) if times else 0.0

    async def get_totals(self, job_id, since):
        matching = [e for e in self.items.values() if e.job_id == job_id and e.started_at >= since]
        return sum(e.tokens_used for e in matching), sum(e.cost_usd for e in matching)


class FakeArticleStore:
    def __init__(self):
        self.items: Dict[str, ArticleModel] = {}

    async def create(self, article):
        self.items[article.id] = article.model_copy()
        return article

    async def get(self, article_id):
        article = self.items.get(article_id)
        return article.model_copy() if article else None

    async def update(self, article):
        self.items[article.id] = article.model_copy()
        return True


class FakeTopicStore:
    """Topics, site assignments and the site x topic usage ledger."""

    def __init__(self):
        self.items: Dict[str, TopicModel] = {}
        self.assignments: List[Tuple[str, str]] = []
        self.used: set = set()

    def add(self, topic_id, title, parent_id=None, sites=()):
        self.items[topic_id] = TopicModel(id=topic_id, title=title, parent_id=parent_id, created_at=NOW)
        for site_id in sites:
            self.assignments.append((site_id, topic_id))
        return self.items[topic_id]

    async def create(self, topic):
        self.items[topic.id] = topic
        return topic

    async def get(self, topic_id):
        return self.items.get(topic_id)

    async def get_many(self, topic_ids):
        return [self.items[t] for t in topic_ids if t in self.items and self.items[t].deleted_at is None]

    async def get_unused(self, site_id, topic_ids):
        return [t for t in await self.get_many(topic_ids) if (site_id, t.id) not in self.used]

    async def count_unused(self, site_id, topic_ids):
        return len(await self.get_unused(site_id, topic_ids))

    async def mark_used(self, site_id, topic_id):
        if (site_id, topic_id) in self.used:
            return False
        self.used.add((site_id, topic_id))
        return True

    async def assign_to_site(self, site_id, topic_id):
        if (site_id, topic_id) not in self.assignments:
            self.assignments.append((site_id, topic_id))

    async def get_assigned_for_site(self, site_id):
        return await self.get_many([t for s, t in self.assignments if s == site_id])

    async def get_variations(self, parent_id):
        return [t for t in self.items.values() if t.parent_id == parent_id and t.deleted_at is None]


class FakeLookup:
    """Read-only store keyed by id, standing in for site/category/provider/prompt repositories."""

    def __init__(self, *records):
        self.items = {record.id: record for record in records}

    async def get(self, record_id):
        return self.items.get(record_id)

    async def get_with_credentials(self, record_id):
        return self.items.get(record_id)

    async def get_many(self, record_ids):
        return [self.items[r] for r in record_ids if r in self.items]


# Collaborators

class FakeGenerator:
    def __init__(self, words: int = 150, title: str = "Generated Title"):
        self.words = words
        self.title = title
        self.article_calls: List[Tuple[str, str]] = []
        self.variation_calls: List[Tuple[str, int]] = []
        self.error: Optional[Exception] = None
        self.closed = 0

    async def generate_article(self, system_prompt, user_prompt):
        self.article_calls.append((system_prompt, user_prompt))
        if self.error:
            raise self.error
        return GenerationResult(
            title=self.title,
            excerpt="Short excerpt",
            content=" ".join(["word"] * self.words),
            tokens_used=1200,
            cost_usd=0.0012,
            model="gpt-4o-mini"
        )

    async def generate_topic_variations(self, seed_title, count):
        self.variation_calls.append((seed_title, count))
        return [f"{seed_title} variation {len(self.variation_calls)}"]

    async def close(self):
        self.closed += 1


class FakePublisher:
    def __init__(self):
        self.created: List[Tuple[str, str, str]] = []
        self.updated: List[Tuple[str, int]] = []
        self.next_id = 100
        self.error: Optional[Exception] = None

    async def create_post(self, site, article, status, categories=None):
        if self.error:
            raise self.error
        self.next_id += 1
        self.created.append((site.id, article.title, status))
        return self.next_id

    async def update_post(self, site, article, status="publish"):
        if self.error:
            raise self.error
        self.updated.append((site.id, article.remote_post_id))

    async def close(self):
        pass


class FakeStats:
    def __init__(self):
        self.published: List[Tuple[str, int]] = []
        self.failed: List[str] = []

    async def record_article_published(self, site_id, word_count):
        self.published.append((site_id, word_count))

    async def record_article_failed(self, site_id):
        self.failed.append(site_id)


class FakeEvents:
    def __init__(self):
        self.events: List[Tuple[str, str, dict]] = []

    async def publish(self, event_type, job_id, **payload):
        self.events.append((event_type, job_id, payload))

    def types(self):
        return [event_type for event_type, _, _ in self.events]


class FakeTriggers:
    def __init__(self):
        self.queue: List[str] = []

    async def push(self, job_id):
        self.queue.insert(0, job_id)

    async def pop(self):
        return self.queue.pop() if self.queue else None


# Fixtures

@pytest.fixture
def test_settings():
    """Settings tuned for fast tests."""
    return Settings(
        min_word_count=100,
        pipeline_timeout=5.0,
        scheduler_poll_interval=0.01,
        scheduler_max_concurrency=2,
        shutdown_timeout=1.0,
        missed_run_delay_min=1,
        missed_run_delay_max=5,
    )


@pytest.fixture
def topic_store():
    store = FakeTopicStore()
    store.add("topic_1", "Growing Tomatoes", sites=["site_1"])
    store.add("topic_2", "Pruning Roses", sites=["site_1"])
    store.add("topic_3", "Composting Basics", sites=["site_1"])
    return store


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def engine_deps(test_settings, topic_store, generator):
    """Engine dependencies backed entirely by in-memory fakes."""
    states = FakeStateStore()
    return EngineDependencies(
        jobs=FakeJobStore(states),
        states=states,
        executions=FakeExecutionStore(),
        articles=FakeArticleStore(),
        topics=topic_store,
        sites=FakeLookup(
            SiteModel(id="site_1", name="Garden Blog", url="https://garden.example.com",
                      username="editor", app_password="secret"),
            SiteModel(id="site_off", name="Old Blog", url="https://old.example.com", is_active=False),
        ),
        categories=FakeLookup(
            CategoryModel(id="cat_a", site_id="site_1", name="Vegetables", remote_category_id=11),
            CategoryModel(id="cat_b", site_id="site_1", name="Flowers", remote_category_id=12),
            CategoryModel(id="cat_c", site_id="site_1", name="Soil"),
        ),
        providers=FakeLookup(
            AIProviderModel(id="prov_1", name="OpenAI", provider="openai", model="gpt-4o-mini"),
        ),
        prompts=PromptRenderer(FakeLookup(
            PromptModel(
                id="prompt_1",
                name="Blog post",
                system_prompt="You write for {{siteName}}.",
                user_prompt="Write about {{title}} in {{category}} for {{siteUrl}}. Tone: {{tone}}.",
                placeholders=["tone"],
            )
        )),
        generator_factory=lambda provider: generator,
        publisher=FakePublisher(),
        stats=FakeStats(),
        events=FakeEvents(),
        settings=test_settings,
        trigger_source=FakeTriggers(),
    )


@pytest.fixture
def make_job():
    """Build a job with sensible defaults; keyword arguments override fields."""
    def _make(**overrides) -> JobModel:
        data = {
            "id": "job_test123",
            "name": "Garden posts",
            "site_id": "site_1",
            "prompt_id": "prompt_1",
            "ai_provider_id": "prov_1",
            "topic_strategy": "unique",
            "category_strategy": "fixed",
            "categories": ["cat_a", "cat_b", "cat_c"],
            "topics": ["topic_1", "topic_2", "topic_3"],
            "requires_validation": False,
            "schedule": IntervalSchedule(value=6, unit="hours"),
            "placeholder_values": {"tone": "friendly"},
            "created_at": NOW,
            "updated_at": NOW,
        }
        data.update(overrides)
        return JobModel(**data)
    return _make


@pytest.fixture
def stored_job(engine_deps, make_job):
    """Factory that persists a job and its zeroed state."""
    async def _store(**overrides) -> JobModel:
        job = make_job(**overrides)
        await engine_deps.jobs.create(job)
        await engine_deps.states.create(job.id)
        return job
    return _store


@pytest.fixture
def mock_mongo_db():
    """Create mock MongoDB database."""
    db = MagicMock()

    db.jobs = MagicMock()
    db.job_states = MagicMock()
    db.executions = MagicMock()

    db.jobs.find_one = AsyncMock()
    db.jobs.insert_one = AsyncMock()
    db.jobs.update_one = AsyncMock()
    db.jobs.find = MagicMock()
    db.job_states.update_one = AsyncMock()

    return db


@pytest.fixture
def mock_redis_client():
    """Create mock Redis client."""
    redis = AsyncMock()

    redis.lpush = AsyncMock(return_value=1)
    redis.rpop = AsyncMock(return_value=None)
    redis.llen = AsyncMock(return_value=0)
    redis.publish = AsyncMock(return_value=1)

    return redis
