"""Operator actions on executions: approval, rejection and reporting."""
import logging
from datetime import timedelta
from typing import Any, Dict, List

from api.models.article import ArticleStatusEnum
from api.models.execution import ExecutionModel, ExecutionStatusEnum
from engine.dependencies import EngineDependencies
from engine.events import EventType
from engine.state_machine import apply_transition
from shared.errors import NotFoundError
from shared.utils import get_utc_now

logger = logging.getLogger(__name__)

METRICS_WINDOW_DAYS = 30


class ExecutionService:
    """Service for execution lookups and the validation gate."""

    def __init__(self, deps: EngineDependencies):
        self.deps = deps

    async def get_execution(self, execution_id: str) -> ExecutionModel:
        execution = await self.deps.executions.get(execution_id)
        if execution is None:
            raise NotFoundError("execution", execution_id)
        return execution

    async def list_executions(self, job_id: str, limit: int = 50, offset: int = 0) -> List[ExecutionModel]:
        return await self.deps.executions.list_by_job(job_id, limit=limit, offset=offset)

    async def get_pending_validations(self) -> List[ExecutionModel]:
        return await self.deps.executions.get_pending_validation()

    async def update_status(self, execution_id: str, status: ExecutionStatusEnum) -> ExecutionModel:
        """Apply a single validated transition and persist it."""
        execution = await self.get_execution(execution_id)
        # Deleted jobs leave their executions behind as ungated history
        job = await self.deps.jobs.get(execution.job_id)
        apply_transition(execution, status, requires_validation=job.requires_validation if job else False)
        await self.deps.executions.update(execution)
        return execution

    async def approve_execution(self, execution_id: str) -> ExecutionModel:
        """
        Approve an execution awaiting validation and publish its article.

        The execution ends Published, or Failed if publishing fails (the
        error is re-raised). Without an article it stays Validated.
        """
        execution = await self.get_execution(execution_id)
        apply_transition(execution, ExecutionStatusEnum.VALIDATED)
        await self.deps.executions.update(execution)
        logger.info(f"Execution {execution.id}: approved")

        if not execution.article_id:
            return execution

        try:
            await self._publish_article(execution)
        except Exception as e:
            logger.error(f"Execution {execution.id}: publishing after approval failed: {e}")
            apply_transition(execution, ExecutionStatusEnum.FAILED, error_message=str(e))
            await self.deps.executions.update(execution)
            await self.deps.stats.record_article_failed(execution.site_id)
            await self.deps.events.publish(
                EventType.PIPELINE_FAILED, execution.job_id, execution_id=execution.id, error=str(e)
            )
            raise

        return execution

    async def _publish_article(self, execution: ExecutionModel) -> None:
        article = await self.deps.articles.get(execution.article_id)
        if article is None:
            raise NotFoundError("article", execution.article_id)
        site = await self.deps.sites.get_with_credentials(article.site_id)
        if site is None:
            raise NotFoundError("site", article.site_id)

        apply_transition(execution, ExecutionStatusEnum.PUBLISHING)
        await self.deps.executions.update(execution)

        if article.remote_post_id is not None:
            await self.deps.publisher.update_post(site, article)
        else:
            remote_id = await self.deps.publisher.create_post(site, article, "publish")
            article.remote_post_id = remote_id
            article.remote_post_url = f"{site.url.rstrip('/')}/?p={remote_id}"

        article.status = ArticleStatusEnum.PUBLISHED
        article.published_at = get_utc_now()
        await self.deps.articles.update(article)

        apply_transition(execution, ExecutionStatusEnum.PUBLISHED)
        await self.deps.executions.update(execution)
        await self.deps.stats.record_article_published(article.site_id, article.word_count)
        await self.deps.events.publish(
            EventType.PIPELINE_COMPLETED,
            execution.job_id,
            execution_id=execution.id,
            article_id=article.id,
            outcome="completed"
        )
        logger.info(f"Execution {execution.id}: article {article.id} published (remote post {article.remote_post_id})")

    async def reject_execution(self, execution_id: str) -> ExecutionModel:
        """Reject an execution awaiting validation; its article stays a draft."""
        execution = await self.get_execution(execution_id)
        apply_transition(execution, ExecutionStatusEnum.REJECTED)
        await self.deps.executions.update(execution)
        logger.info(f"Execution {execution.id}: rejected")
        return execution

    async def get_job_metrics(self, job_id: str) -> Dict[str, Any]:
        """Run counts, average generation time and last-30-days usage of a job."""
        executions = self.deps.executions
        since = get_utc_now() - timedelta(days=METRICS_WINDOW_DAYS)
        tokens, cost = await executions.get_totals(job_id, since)
        return {
            "job_id": job_id,
            "total_executions": await executions.count_by_job(job_id),
            "successful_executions": await executions.count_by_job(job_id, ExecutionStatusEnum.PUBLISHED),
            "failed_executions": await executions.count_by_job(job_id, ExecutionStatusEnum.FAILED),
            "rejected_executions": await executions.count_by_job(job_id, ExecutionStatusEnum.REJECTED),
            "pending_validation": await executions.count_by_job(job_id, ExecutionStatusEnum.PENDING_VALIDATION),
            "average_generation_time_ms": await executions.get_average_generation_time(job_id),
            "tokens_last_30_days": tokens,
            "cost_last_30_days": cost,
        }
