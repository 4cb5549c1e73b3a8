"""Job service: validated CRUD and lifecycle actions on jobs."""
import logging
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from api.models.job import JobModel, JobStatusEnum, TopicStrategyEnum
from api.models.topic import TopicModel
from api.schemas.requests import JobCreateRequest, JobUpdateRequest
from api.services.publisher import PublisherService
from database.repositories import (
    AIProviderRepository,
    CategoryRepository,
    JobRepository,
    JobStateRepository,
    PromptRepository,
    SiteRepository,
    TopicRepository,
)
from engine.scheduler import ScheduleCalculator, validate_schedule
from engine.strategies import get_topic_strategy
from shared.config import settings
from shared.errors import NotFoundError, ValidationError
from shared.utils import generate_job_id, get_utc_now

logger = logging.getLogger(__name__)


class JobService:
    """Service for job CRUD, pause/resume and manual execution requests."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        publisher: PublisherService,
        calculator: Optional[ScheduleCalculator] = None
    ):
        self.jobs = JobRepository(db)
        self.states = JobStateRepository(db)
        self.sites = SiteRepository(db)
        self.categories = CategoryRepository(db)
        self.topics = TopicRepository(db)
        self.prompts = PromptRepository(db)
        self.providers = AIProviderRepository(db)
        self.publisher = publisher
        self.calculator = calculator or ScheduleCalculator(settings.scheduler_timezone)

    async def _validate(self, job: JobModel) -> None:
        """Check the job configuration and every record it references."""
        if not job.name.strip():
            raise ValidationError("job name is required")
        if job.jitter_enabled and job.jitter_minutes <= 0:
            raise ValidationError("jitter minutes must be positive when jitter is enabled")
        validate_schedule(job.schedule)

        site = await self.sites.get_with_credentials(job.site_id)
        if site is None:
            raise NotFoundError("site", job.site_id)
        if await self.prompts.get(job.prompt_id) is None:
            raise NotFoundError("prompt", job.prompt_id)
        if await self.providers.get(job.ai_provider_id) is None:
            raise NotFoundError("ai provider", job.ai_provider_id)

        if not job.categories:
            raise ValidationError("at least one category is required")
        found = await self.categories.get_many(job.categories)
        found_ids = {category.id for category in found}
        for category_id in job.categories:
            if category_id not in found_ids:
                raise NotFoundError("category", category_id)
        for category in found:
            if category.site_id != job.site_id:
                raise ValidationError(f"category {category.id} does not belong to site {job.site_id}")

        if job.topic_strategy == TopicStrategyEnum.UNIQUE and not job.topics:
            raise ValidationError("unique topic strategy requires at least one topic")
        if job.topics:
            topics = await self.topics.get_many(job.topics)
            known = {topic.id for topic in topics}
            for topic_id in job.topics:
                if topic_id not in known:
                    raise NotFoundError("topic", topic_id)

    async def _reschedule(self, job: JobModel) -> None:
        if job.status != JobStatusEnum.ACTIVE:
            await self.states.update_next_run(job.id, None)
            return
        state = await self.states.get(job.id)
        _, next_run = self.calculator.calculate_next_run(job, state.last_run_at if state else None)
        await self.states.update_next_run(job.id, next_run)

    async def _repair_category_index(self, job: JobModel) -> None:
        # The rotation cursor must stay inside the category list
        state = await self.states.get(job.id)
        if state is None or state.last_category_index < len(job.categories):
            return
        index = state.last_category_index % len(job.categories)
        await self.states.update_category_index(job.id, index)
        logger.info(f"Job {job.id}: category cursor moved to {index} after category change")

    async def create_job(self, request: JobCreateRequest) -> JobModel:
        """Create a job with a zeroed state and its first planned run."""
        now = get_utc_now()
        job = JobModel(
            id=generate_job_id(),
            status=JobStatusEnum.ACTIVE,
            created_at=now,
            updated_at=now,
            **request.model_dump()
        )
        await self._validate(job)

        await self.jobs.create(job)
        await self.states.create(job.id)
        await self._reschedule(job)
        logger.info(f"Created job {job.id} ({job.name}) for site {job.site_id}")
        return job

    async def get_job(self, job_id: str) -> JobModel:
        job = await self.jobs.get(job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        return job

    async def get_job_with_state(self, job_id: str):
        job = await self.get_job(job_id)
        return job, await self.states.get(job_id)

    async def list_jobs(
        self,
        status: Optional[JobStatusEnum] = None,
        site_id: Optional[str] = None,
        limit: int = 50,
        skip: int = 0
    ) -> List[JobModel]:
        return await self.jobs.list(
            status=JobStatusEnum(status).value if status else None,
            site_id=site_id,
            limit=limit,
            skip=skip
        )

    async def update_job(self, job_id: str, request: JobUpdateRequest) -> JobModel:
        """Apply a partial update, revalidate and reschedule."""
        job = await self.get_job(job_id)
        data = job.model_dump(by_alias=True)
        data.update({
            key: value
            for key, value in request.model_dump(exclude_unset=True).items()
            if value is not None
        })
        updated = JobModel.model_validate(data)
        await self._validate(updated)

        await self.jobs.update(updated)
        if updated.categories != job.categories:
            await self._repair_category_index(updated)
        await self._reschedule(updated)
        logger.info(f"Updated job {job_id}")
        return updated

    async def delete_job(self, job_id: str) -> None:
        """Delete a job and its state; executions stay as history."""
        await self.get_job(job_id)
        await self.jobs.delete(job_id)
        await self.states.delete(job_id)
        await self.publisher.publish_job_update(job_id, "deleted", "Job deleted")
        logger.info(f"Deleted job {job_id}")

    async def pause_job(self, job_id: str) -> JobModel:
        job = await self.get_job(job_id)
        await self.jobs.update_status(job_id, JobStatusEnum.PAUSED)
        job.status = JobStatusEnum.PAUSED
        await self.states.update_next_run(job_id, None)
        await self.publisher.publish_job_update(job_id, job.status.value, "Job paused")
        logger.info(f"Paused job {job_id}")
        return job

    async def resume_job(self, job_id: str) -> JobModel:
        job = await self.get_job(job_id)
        await self.jobs.update_status(job_id, JobStatusEnum.ACTIVE)
        job.status = JobStatusEnum.ACTIVE
        await self._reschedule(job)
        await self.publisher.publish_job_update(job_id, job.status.value, "Job resumed")
        logger.info(f"Resumed job {job_id}")
        return job

    async def execute_manually(self, job_id: str) -> JobModel:
        """Queue a manual run for the engine."""
        job = await self.get_job(job_id)
        if job.status != JobStatusEnum.ACTIVE:
            raise ValidationError(f"job {job_id} is paused; resume it before running")
        await self.publisher.publish_trigger(job_id)
        logger.info(f"Queued manual run of job {job_id}")
        return job

    async def get_remaining_topics(self, job_id: str) -> Tuple[JobModel, List[TopicModel], int]:
        job = await self.get_job(job_id)
        strategy = get_topic_strategy(job.topic_strategy, self.topics)
        topics, count = await strategy.get_remaining_topics(job)
        return job, topics, count
