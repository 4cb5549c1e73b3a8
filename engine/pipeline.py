"""Pipeline executor: turns one due job into a published (or gated) article."""
import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from api.models.article import ArticleModel, ArticleStatusEnum
from api.models.execution import ExecutionModel, ExecutionStatusEnum
from api.models.job import CategoryStrategyEnum, JobModel, JobStateModel, JobStatusEnum
from api.models.site import AIProviderModel, CategoryModel, SiteModel
from api.models.topic import TopicModel
from engine.categories import select_category
from engine.dependencies import AIGenerator, EngineDependencies, GenerationResult
from engine.events import EventType
from engine.state_machine import apply_transition, is_terminal
from engine.strategies import TopicStrategy, get_topic_strategy
from shared.errors import NoResourcesError, NotFoundError, PipelineError, ValidationError
from shared.utils import count_words, generate_article_id, generate_execution_id, get_utc_now

logger = logging.getLogger(__name__)


class PipelineStep(str, Enum):
    """Pipeline steps, in execution order."""
    INITIALIZE = "initialize"
    VALIDATE = "validate"
    SELECT_TOPIC = "select_topic"
    SELECT_CATEGORY = "select_category"
    CREATE_EXECUTION = "create_execution"
    RENDER_PROMPT = "render_prompt"
    GENERATE_AI = "generate_ai"
    VALIDATE_OUTPUT = "validate_output"
    PUBLISH = "publish"
    MARK_USED = "mark_used"
    COMPLETE = "complete"


class PipelineOutcome(str, Enum):
    """How a pipeline invocation ended without error."""
    COMPLETED = "completed"
    PENDING_VALIDATION = "pending_validation"
    NO_RESOURCES = "no_resources"


@dataclass
class PipelineContext:
    """Mutable state shared by the steps of one run."""
    job: JobModel
    manual: bool = False
    state: Optional[JobStateModel] = None
    site: Optional[SiteModel] = None
    provider: Optional[AIProviderModel] = None
    topic: Optional[TopicModel] = None
    category: Optional[CategoryModel] = None
    execution: Optional[ExecutionModel] = None
    system_prompt: str = ""
    user_prompt: str = ""
    generation: Optional[GenerationResult] = None
    article: Optional[ArticleModel] = None
    current_step: Optional[PipelineStep] = None
    completed_steps: List[PipelineStep] = field(default_factory=list)
    outcome: Optional[PipelineOutcome] = None
    started_at: float = field(default_factory=time.monotonic)
    generator: Optional[AIGenerator] = field(default=None, repr=False)

    def snapshot(self) -> Dict[str, Any]:
        """JSON-friendly view of the run for logs, events and tests."""
        return {
            "job_id": self.job.id,
            "manual": self.manual,
            "site_id": self.site.id if self.site else None,
            "provider_id": self.provider.id if self.provider else None,
            "topic_id": self.topic.id if self.topic else None,
            "topic_title": self.topic.title if self.topic else None,
            "category_id": self.category.id if self.category else None,
            "execution_id": self.execution.id if self.execution else None,
            "execution_status": self.execution.status.value if self.execution else None,
            "article_id": self.article.id if self.article else None,
            "system_prompt_chars": len(self.system_prompt),
            "user_prompt_chars": len(self.user_prompt),
            "generated_title": self.generation.title if self.generation else None,
            "current_step": self.current_step.value if self.current_step else None,
            "completed_steps": [step.value for step in self.completed_steps],
            "outcome": self.outcome.value if self.outcome else None,
        }


StepHandler = Callable[[PipelineContext, TopicStrategy], Awaitable[None]]


class PipelineExecutor:
    """
    Runs the fixed step sequence for one job invocation.

    A NoResourcesError from any step pauses the job and ends the run
    without error. Any other step failure is recorded on the execution
    (if one was created), counted as a failed article for the site and
    re-raised as PipelineError carrying the job id and the step name.
    The executor does no locking; callers must not run a job twice at once.
    """

    def __init__(self, deps: EngineDependencies, rng: Optional[random.Random] = None):
        self.deps = deps
        self.settings = deps.settings
        self.rng = rng or random.Random()
        self._steps: List[Tuple[PipelineStep, StepHandler]] = [
            (PipelineStep.INITIALIZE, self._initialize),
            (PipelineStep.VALIDATE, self._validate),
            (PipelineStep.SELECT_TOPIC, self._select_topic),
            (PipelineStep.SELECT_CATEGORY, self._select_category),
            (PipelineStep.CREATE_EXECUTION, self._create_execution),
            (PipelineStep.RENDER_PROMPT, self._render_prompt),
            (PipelineStep.GENERATE_AI, self._generate_ai),
            (PipelineStep.VALIDATE_OUTPUT, self._validate_output),
            (PipelineStep.PUBLISH, self._publish),
            (PipelineStep.MARK_USED, self._mark_used),
            (PipelineStep.COMPLETE, self._complete),
        ]

    def strategy_for(self, job: JobModel) -> TopicStrategy:
        """Topic strategy implementation configured for a job."""
        return get_topic_strategy(job.topic_strategy, self.deps.topics, self.rng)

    async def execute(self, job: JobModel, manual: bool = False) -> PipelineContext:
        """Run every step for `job` and return the final context."""
        ctx = PipelineContext(job=job, manual=manual)
        strategy = self.strategy_for(job)
        await self.deps.events.publish(EventType.PIPELINE_STARTED, job.id, manual=manual)

        try:
            return await self._run_steps(ctx, strategy)
        finally:
            await self._close_generator(ctx)

    async def _run_steps(self, ctx: PipelineContext, strategy: TopicStrategy) -> PipelineContext:
        job, manual = ctx.job, ctx.manual
        for step, handler in self._steps:
            ctx.current_step = step
            logger.info(f"Job {job.id}: executing step '{step.value}'")
            try:
                await handler(ctx, strategy)
            except NoResourcesError as e:
                await self._handle_no_resources(ctx, e)
                return ctx
            except asyncio.CancelledError:
                await self._handle_failure(ctx, step, "execution cancelled")
                raise
            except Exception as e:
                logger.error(f"Job {job.id}: step '{step.value}' failed: {e}")
                await self._handle_failure(ctx, step, str(e))
                raise PipelineError(job.id, step.value, e) from e

            ctx.completed_steps.append(step)
            await self.deps.events.publish(
                EventType.STEP_COMPLETED,
                job.id,
                step=step.value,
                execution_id=ctx.execution.id if ctx.execution else None
            )

        if not manual:
            await self._check_remaining_resources(ctx, strategy)
        return ctx

    # Steps

    async def _initialize(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        job_id = ctx.job.id
        ctx.state = await self.deps.states.get(job_id)
        if ctx.state is None:
            ctx.state = await self.deps.states.create(job_id)
        now = get_utc_now()
        await self.deps.states.update_last_run(job_id, now)
        ctx.state.last_run_at = now

    async def _validate(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        job = ctx.job
        site = await self.deps.sites.get_with_credentials(job.site_id)
        if site is None:
            raise NotFoundError("site", job.site_id)
        if not site.is_active:
            raise ValidationError(f"site {site.id} is not active")
        ctx.site = site

        if not job.categories:
            raise ValidationError("no categories assigned to job")

        provider = await self.deps.providers.get(job.ai_provider_id)
        if provider is None:
            raise NotFoundError("ai provider", job.ai_provider_id)
        if not provider.is_active:
            raise ValidationError(f"ai provider {provider.id} is not active")
        ctx.provider = provider

        await strategy.can_execute(job)

    async def _select_topic(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        ctx.topic = await strategy.pick_topic(ctx.job, self._generator(ctx))
        logger.info(f"Job {ctx.job.id}: selected topic {ctx.topic.id} ({ctx.topic.title})")

    async def _select_category(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        job = ctx.job
        last_index = ctx.state.last_category_index if ctx.state else 0
        category_id, next_index = select_category(
            job.category_strategy, job.categories, last_index, self.rng
        )

        if CategoryStrategyEnum(job.category_strategy) == CategoryStrategyEnum.ROTATE:
            # Persisted before the rest of the run; not rolled back on later failure
            await self.deps.states.update_category_index(job.id, next_index)
            if ctx.state:
                ctx.state.last_category_index = next_index

        category = await self.deps.categories.get(category_id)
        if category is None:
            raise NotFoundError("category", category_id)
        ctx.category = category
        logger.info(f"Job {job.id}: selected category {category.id} ({category.name})")

    async def _create_execution(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        job = ctx.job
        execution = ExecutionModel(
            id=generate_execution_id(),
            job_id=job.id,
            site_id=job.site_id,
            topic_id=ctx.topic.id,
            category_id=ctx.category.id,
            prompt_id=job.prompt_id,
            ai_provider_id=job.ai_provider_id,
            ai_model=ctx.provider.model if ctx.provider else None,
            status=ExecutionStatusEnum.PENDING,
            started_at=get_utc_now()
        )
        await self.deps.executions.create(execution)
        ctx.execution = execution
        logger.info(f"Job {job.id}: created execution {execution.id}")

    async def _render_prompt(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        placeholders = {
            "title": ctx.topic.title,
            "siteName": ctx.site.name,
            "siteUrl": ctx.site.url,
            "category": ctx.category.name,
        }
        placeholders.update(ctx.job.placeholder_values)

        ctx.system_prompt, ctx.user_prompt = await self.deps.prompts.render(ctx.job.prompt_id, placeholders)
        logger.debug(
            f"Job {ctx.job.id}: rendered prompts (system: {len(ctx.system_prompt)} chars, "
            f"user: {len(ctx.user_prompt)} chars)"
        )

    async def _generate_ai(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        execution = ctx.execution
        apply_transition(execution, ExecutionStatusEnum.GENERATING)
        await self.deps.executions.update(execution)

        started = time.monotonic()
        result = await self._generator(ctx).generate_article(ctx.system_prompt, ctx.user_prompt)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        ctx.generation = result
        execution.generated_at = get_utc_now()
        execution.generation_time_ms = elapsed_ms
        execution.tokens_used = result.tokens_used
        execution.cost_usd = result.cost_usd
        if result.model:
            execution.ai_model = result.model
        await self.deps.executions.update(execution)

        logger.info(
            f"Job {ctx.job.id}: generated article (title: {result.title}, "
            f"content: {len(result.content)} chars, time: {elapsed_ms}ms)"
        )

    async def _validate_output(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        result = ctx.generation
        if not result.title.strip():
            raise ValidationError("generated title is empty")
        if not result.content.strip():
            raise ValidationError("generated content is empty")
        words = count_words(result.content)
        if words < self.settings.min_word_count:
            raise ValidationError(
                f"generated content is too short ({words} words, minimum {self.settings.min_word_count})"
            )

    async def _publish(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        job, site, execution = ctx.job, ctx.site, ctx.execution
        now = get_utc_now()
        article = ArticleModel(
            id=generate_article_id(),
            site_id=site.id,
            job_id=job.id,
            topic_id=ctx.topic.id,
            category_id=ctx.category.id,
            title=ctx.generation.title,
            excerpt=ctx.generation.excerpt,
            content=ctx.generation.content,
            word_count=count_words(ctx.generation.content),
            status=ArticleStatusEnum.DRAFT,
            created_at=now,
            updated_at=now
        )
        remote_categories = (
            [ctx.category.remote_category_id] if ctx.category.remote_category_id is not None else None
        )

        if job.requires_validation:
            remote_id = await self.deps.publisher.create_post(
                site, article, "draft", categories=remote_categories
            )
            article.remote_post_id = remote_id
            article.remote_post_url = f"{site.url.rstrip('/')}/?p={remote_id}"
            await self.deps.articles.create(article)
            ctx.article = article

            execution.article_id = article.id
            apply_transition(execution, ExecutionStatusEnum.PENDING_VALIDATION, requires_validation=True)
            await self.deps.executions.update(execution)
            logger.info(
                f"Job {job.id}: article {article.id} created as draft and awaiting validation "
                f"(remote post {remote_id})"
            )
            return

        apply_transition(execution, ExecutionStatusEnum.PUBLISHING)
        await self.deps.executions.update(execution)

        remote_id = await self.deps.publisher.create_post(
            site, article, "publish", categories=remote_categories
        )
        article.remote_post_id = remote_id
        article.remote_post_url = f"{site.url.rstrip('/')}/?p={remote_id}"
        article.status = ArticleStatusEnum.PUBLISHED
        article.published_at = get_utc_now()
        await self.deps.articles.create(article)
        ctx.article = article

        execution.article_id = article.id
        apply_transition(execution, ExecutionStatusEnum.PUBLISHED)
        await self.deps.executions.update(execution)
        logger.info(f"Job {job.id}: article {article.id} published (remote post {remote_id})")

    async def _mark_used(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        # A draft awaiting validation consumes its topic too
        try:
            await strategy.on_execution_success(ctx.job, ctx.topic)
        except Exception as e:
            logger.error(f"Job {ctx.job.id}: failed to mark topic {ctx.topic.id} as used: {e}")
            return
        logger.info(f"Job {ctx.job.id}: recorded usage of topic {ctx.topic.id}")

    async def _complete(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        execution = ctx.execution
        elapsed = time.monotonic() - ctx.started_at

        if execution.status == ExecutionStatusEnum.PUBLISHED:
            await self.deps.stats.record_article_published(ctx.site.id, ctx.article.word_count)
            ctx.outcome = PipelineOutcome.COMPLETED
        else:
            ctx.outcome = PipelineOutcome.PENDING_VALIDATION

        await self.deps.events.publish(
            EventType.PIPELINE_COMPLETED,
            ctx.job.id,
            execution_id=execution.id,
            article_id=ctx.article.id,
            outcome=ctx.outcome.value
        )
        logger.info(f"Job {ctx.job.id}: execution {execution.id} finished as {ctx.outcome.value} in {elapsed:.1f}s")

    # Outcomes

    def _generator(self, ctx: PipelineContext) -> Optional[AIGenerator]:
        if ctx.generator is None and ctx.provider is not None:
            ctx.generator = self.deps.generator_factory(ctx.provider)
        return ctx.generator

    async def _close_generator(self, ctx: PipelineContext) -> None:
        if ctx.generator is None:
            return
        try:
            await ctx.generator.close()
        except Exception as e:
            logger.warning(f"Job {ctx.job.id}: failed to close AI client: {e}")

    async def _pause_job(self, job: JobModel, reason: str) -> None:
        await self.deps.jobs.update_status(job.id, JobStatusEnum.PAUSED)
        job.status = JobStatusEnum.PAUSED
        await self.deps.events.publish(EventType.PIPELINE_PAUSED, job.id, reason=reason)

    async def _handle_no_resources(self, ctx: PipelineContext, error: NoResourcesError) -> None:
        logger.info(f"Job {ctx.job.id}: no {error.resource} left ({error}), pausing job")
        if ctx.execution is not None and not is_terminal(ctx.execution.status):
            apply_transition(ctx.execution, ExecutionStatusEnum.FAILED, error_message=str(error))
            await self.deps.executions.update(ctx.execution)
        ctx.outcome = PipelineOutcome.NO_RESOURCES
        await self._pause_job(ctx.job, str(error))

    async def _handle_failure(self, ctx: PipelineContext, step: PipelineStep, message: str) -> None:
        """Record a failed run; errors while recording are logged so the original error wins."""
        job = ctx.job
        try:
            if ctx.execution is not None:
                if not is_terminal(ctx.execution.status):
                    apply_transition(ctx.execution, ExecutionStatusEnum.FAILED, error_message=message)
                    await self.deps.executions.update(ctx.execution)
                await self.deps.stats.record_article_failed(job.site_id)
        except Exception as e:
            logger.error(f"Job {job.id}: failed to record failure of step '{step.value}': {e}")

        await self.deps.events.publish(
            EventType.STEP_FAILED, job.id, step=step.value, error=message
        )
        await self.deps.events.publish(
            EventType.PIPELINE_FAILED,
            job.id,
            step=step.value,
            error=message,
            execution_id=ctx.execution.id if ctx.execution else None
        )

    async def _check_remaining_resources(self, ctx: PipelineContext, strategy: TopicStrategy) -> None:
        if ctx.outcome not in (PipelineOutcome.COMPLETED, PipelineOutcome.PENDING_VALIDATION):
            return
        try:
            await strategy.can_execute(ctx.job)
        except NoResourcesError as e:
            logger.info(f"Job {ctx.job.id}: resources exhausted after run ({e}), pausing job")
            await self._pause_job(ctx.job, str(e))
        except Exception as e:
            logger.warning(f"Job {ctx.job.id}: post-run resource check failed: {e}")
