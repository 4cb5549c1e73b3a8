"""Topic selection strategies."""
import logging
import random
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from api.models.job import JobModel, TopicStrategyEnum
from api.models.topic import TopicModel
from engine.dependencies import AIGenerator
from shared.errors import CollaboratorError, NoResourcesError, ValidationError
from shared.utils import generate_topic_id, get_utc_now

logger = logging.getLogger(__name__)


class TopicStrategy(ABC):
    """Decides which topic a job writes about next."""

    def __init__(self, topics):
        self.topics = topics

    @abstractmethod
    async def can_execute(self, job: JobModel) -> None:
        """Raise NoResourcesError if the job has nothing left to consume."""

    @abstractmethod
    async def pick_topic(self, job: JobModel, generator: Optional[AIGenerator] = None) -> TopicModel:
        """Return the topic for the next run."""

    @abstractmethod
    async def on_execution_success(self, job: JobModel, topic: TopicModel) -> None:
        """Record consumption of `topic` by the job's site."""

    @abstractmethod
    async def get_selectable_topics(self, site_id: str, job: Optional[JobModel] = None) -> List[TopicModel]:
        """Topics the strategy may still choose from."""

    async def get_remaining_topics(self, job: JobModel) -> Tuple[List[TopicModel], int]:
        """Read-only projection of what is left, with its size."""
        topics = await self.get_selectable_topics(job.site_id, job)
        return topics, len(topics)


class UniqueTopicStrategy(TopicStrategy):
    """Never repeats a topic on the same site; works through `job.topics` in order."""

    async def can_execute(self, job: JobModel) -> None:
        if not job.topics:
            raise NoResourcesError("topics", f"job {job.id} has no topics configured")
        if await self.topics.count_unused(job.site_id, job.topics) == 0:
            raise NoResourcesError("topics", f"all topics of job {job.id} are used on site {job.site_id}")

    async def pick_topic(self, job: JobModel, generator: Optional[AIGenerator] = None) -> TopicModel:
        unused = await self.topics.get_unused(job.site_id, job.topics)
        if not unused:
            raise NoResourcesError("topics", f"all topics of job {job.id} are used on site {job.site_id}")
        return unused[0]

    async def on_execution_success(self, job: JobModel, topic: TopicModel) -> None:
        await self.topics.mark_used(job.site_id, topic.id)

    async def get_selectable_topics(self, site_id: str, job: Optional[JobModel] = None) -> List[TopicModel]:
        if job is None:
            assigned = await self.topics.get_assigned_for_site(site_id)
            return await self.topics.get_unused(site_id, [topic.id for topic in assigned])
        return await self.topics.get_unused(site_id, job.topics)


class VariationTopicStrategy(TopicStrategy):
    """
    Writes about fresh AI-generated variations of the site's original topics.

    Variations are linked to their original through `parent_id`. An unused
    variation of the chosen original is reused before asking the AI for a new one.
    """

    def __init__(self, topics, rng: Optional[random.Random] = None):
        super().__init__(topics)
        self.rng = rng or random.Random()

    async def _originals(self, site_id: str) -> List[TopicModel]:
        assigned = await self.topics.get_assigned_for_site(site_id)
        return [topic for topic in assigned if topic.parent_id is None]

    async def can_execute(self, job: JobModel) -> None:
        if not await self._originals(job.site_id):
            raise NoResourcesError("topics", f"site {job.site_id} has no topics assigned")

    async def pick_topic(self, job: JobModel, generator: Optional[AIGenerator] = None) -> TopicModel:
        originals = await self._originals(job.site_id)
        if not originals:
            raise NoResourcesError("topics", f"site {job.site_id} has no topics assigned")

        original = self.rng.choice(originals)
        logger.info(f"Job {job.id}: using original topic '{original.title}' for variation")

        variations = await self.topics.get_variations(original.id)
        if variations:
            unused = await self.topics.get_unused(job.site_id, [topic.id for topic in variations])
            if unused:
                logger.info(f"Job {job.id}: reusing variation '{unused[0].title}'")
                return unused[0]

        if generator is None:
            raise ValidationError("variation strategy requires an AI generator")

        titles = await generator.generate_topic_variations(original.title, 1)
        titles = [title.strip() for title in titles if title and title.strip()]
        if not titles:
            raise CollaboratorError("ai", f"no variation returned for topic '{original.title}'")

        variation = TopicModel(
            id=generate_topic_id(),
            title=titles[0],
            parent_id=original.id,
            created_at=get_utc_now()
        )
        await self.topics.create(variation)
        await self.topics.assign_to_site(job.site_id, variation.id)
        logger.info(f"Job {job.id}: generated variation '{variation.title}'")
        return variation

    async def on_execution_success(self, job: JobModel, topic: TopicModel) -> None:
        # Originals stay reusable; a consumed variation must not be picked again
        if topic.parent_id is not None:
            await self.topics.mark_used(job.site_id, topic.id)

    async def get_selectable_topics(self, site_id: str, job: Optional[JobModel] = None) -> List[TopicModel]:
        return await self.topics.get_assigned_for_site(site_id)


def get_topic_strategy(strategy: TopicStrategyEnum, topics, rng: Optional[random.Random] = None) -> TopicStrategy:
    """Build the strategy implementation for a job's topic strategy."""
    strategy = TopicStrategyEnum(strategy)
    if strategy == TopicStrategyEnum.UNIQUE:
        return UniqueTopicStrategy(topics)
    if strategy == TopicStrategyEnum.VARIATION:
        return VariationTopicStrategy(topics, rng)
    raise ValidationError(f"unknown topic strategy: {strategy}")
