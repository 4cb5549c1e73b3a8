"""Job scheduling: next-run calculation, due-job polling and manual triggers."""
import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import Optional, Set, Tuple
from zoneinfo import ZoneInfo

from api.models.job import (
    DailySchedule,
    IntervalSchedule,
    IntervalUnitEnum,
    JobModel,
    JobStatusEnum,
    ManualSchedule,
    OnceSchedule,
    Schedule,
)
from engine.dependencies import EngineDependencies
from engine.pipeline import PipelineExecutor, PipelineOutcome
from shared.errors import NotFoundError, PipelineError, ValidationError, EngineError
from shared.utils import ensure_utc, get_utc_now

logger = logging.getLogger(__name__)

INTERVAL_UNITS = {
    IntervalUnitEnum.MINUTES: timedelta(minutes=1),
    IntervalUnitEnum.HOURS: timedelta(hours=1),
    IntervalUnitEnum.DAYS: timedelta(days=1),
    IntervalUnitEnum.WEEKS: timedelta(weeks=1),
}


def validate_schedule(schedule: Schedule, now: Optional[datetime] = None) -> None:
    """Raise ValidationError for a schedule that can never run as configured."""
    now = now or get_utc_now()
    if isinstance(schedule, OnceSchedule):
        if ensure_utc(schedule.execute_at) <= now:
            raise ValidationError("once schedule must be in the future")
    elif isinstance(schedule, IntervalSchedule):
        if schedule.value <= 0:
            raise ValidationError("interval value must be positive")
    elif isinstance(schedule, DailySchedule):
        if not 0 <= schedule.hour <= 23:
            raise ValidationError("daily schedule hour must be between 0 and 23")
        if not 0 <= schedule.minute <= 59:
            raise ValidationError("daily schedule minute must be between 0 and 59")
        for day in schedule.weekdays:
            if not 0 <= day <= 7:
                raise ValidationError(f"invalid weekday {day}, expected 0-7")


class ScheduleCalculator:
    """Computes when a job should run next."""

    def __init__(self, timezone: str = "UTC", rng: Optional[random.Random] = None):
        self.tz = ZoneInfo(timezone)
        self.rng = rng or random.Random()

    def calculate_next_run(
        self,
        job: JobModel,
        last_run: Optional[datetime],
        now: Optional[datetime] = None
    ) -> Tuple[Optional[datetime], Optional[datetime]]:
        """
        Return (base time, base time plus jitter), both None when the job
        has no further automatic run.
        """
        now = ensure_utc(now) or get_utc_now()
        last_run = ensure_utc(last_run)
        schedule = job.schedule

        if isinstance(schedule, ManualSchedule):
            return None, None
        if isinstance(schedule, OnceSchedule):
            base = self._next_once(schedule, now)
        elif isinstance(schedule, IntervalSchedule):
            base = self._next_interval(schedule, last_run, now)
        elif isinstance(schedule, DailySchedule):
            base = self._next_daily(schedule, max(last_run, now) if last_run else now)
        else:
            raise ValidationError(f"unsupported schedule type: {schedule.type}")

        if base is None:
            return None, None
        return base, self.apply_jitter(job, base)

    def apply_jitter(self, job: JobModel, base: datetime) -> datetime:
        """Add a uniform offset in [0, jitter_minutes] if jitter is enabled."""
        if not job.jitter_enabled or job.jitter_minutes <= 0:
            return base
        return base + timedelta(seconds=self.rng.uniform(0, job.jitter_minutes * 60))

    @staticmethod
    def _next_once(schedule: OnceSchedule, now: datetime) -> Optional[datetime]:
        execute_at = ensure_utc(schedule.execute_at)
        return execute_at if execute_at > now else None

    @staticmethod
    def _next_interval(schedule: IntervalSchedule, last_run: Optional[datetime], now: datetime) -> datetime:
        if schedule.value <= 0:
            raise ValidationError("interval value must be positive")
        period = INTERVAL_UNITS[IntervalUnitEnum(schedule.unit)] * schedule.value
        anchor = last_run or now
        candidate = anchor + period
        if candidate <= now:
            # Skip the periods that elapsed while the job was not running
            candidate = anchor + period * ((now - anchor) // period + 1)
        return candidate

    def _next_daily(self, schedule: DailySchedule, reference: datetime) -> datetime:
        # Weekdays use ISO numbering with Sunday as 0 or 7
        allowed = {day % 7 for day in schedule.weekdays}
        local = reference.astimezone(self.tz)
        candidate = local.replace(hour=schedule.hour, minute=schedule.minute, second=0, microsecond=0)
        if candidate <= local:
            candidate += timedelta(days=1)

        for _ in range(7):
            if not allowed or candidate.isoweekday() % 7 in allowed:
                break
            candidate += timedelta(days=1)

        return ensure_utc(candidate)


class JobScheduler:
    """
    Polls for due jobs and runs them through the pipeline.

    At most one pipeline run per job is in flight at any time; concurrent
    runs across jobs are bounded by a semaphore. A failing job is logged
    and counted, it never stops the polling loop.
    """

    def __init__(
        self,
        deps: EngineDependencies,
        executor: Optional[PipelineExecutor] = None,
        calculator: Optional[ScheduleCalculator] = None,
        rng: Optional[random.Random] = None
    ):
        self.deps = deps
        self.settings = deps.settings
        self.rng = rng or random.Random()
        self.executor = executor or PipelineExecutor(deps, self.rng)
        self.calculator = calculator or ScheduleCalculator(self.settings.scheduler_timezone, self.rng)
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._semaphore = asyncio.Semaphore(self.settings.scheduler_max_concurrency)
        self._in_flight: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def running_jobs(self) -> Set[str]:
        """Ids of jobs with a pipeline run in progress."""
        return set(self._in_flight)

    def is_running(self, job_id: str) -> bool:
        return job_id in self._in_flight

    async def start(self) -> None:
        """Recover schedules and start polling in the background."""
        if self._running:
            logger.warning("Scheduler is already running")
            return

        await self.restore_state()
        self._running = True
        self._loop_task = asyncio.create_task(self._scheduler_loop())
        logger.info(f"Scheduler started, polling every {self.settings.scheduler_poll_interval}s")

    async def stop(self) -> None:
        """Stop polling and wait for in-flight runs, cancelling them after the timeout."""
        if not self._running:
            return

        self._running = False
        logger.info("Stopping scheduler...")

        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} running job(s) to finish...")
            _, pending = await asyncio.wait(set(self._tasks), timeout=self.settings.shutdown_timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning(f"Cancelled {len(pending)} job(s) still running at shutdown")

        logger.info("Scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait until every dispatched run has finished."""
        while self._tasks:
            await asyncio.gather(*set(self._tasks), return_exceptions=True)

    async def _scheduler_loop(self) -> None:
        logger.info("Scheduler loop started")
        while self._running:
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Error in scheduler loop iteration: {e}")
            await asyncio.sleep(self.settings.scheduler_poll_interval)

    async def tick(self, now: Optional[datetime] = None) -> int:
        """Dispatch due jobs and pending manual triggers; return how many runs started."""
        now = now or get_utc_now()
        started = 0

        for job in await self.deps.jobs.get_due(now):
            if self._dispatch(job, manual=False):
                started += 1

        if self.deps.trigger_source is not None:
            while True:
                job_id = await self.deps.trigger_source.pop()
                if job_id is None:
                    break
                try:
                    await self.trigger_job(job_id)
                    started += 1
                except EngineError as e:
                    logger.warning(f"Ignoring manual trigger for job {job_id}: {e}")

        return started

    async def schedule_job(self, job: JobModel) -> Optional[datetime]:
        """Compute and persist the next run of a job."""
        if job.status != JobStatusEnum.ACTIVE:
            await self.deps.states.update_next_run(job.id, None)
            return None

        state = await self.deps.states.get(job.id)
        last_run = state.last_run_at if state else None
        base, next_run = self.calculator.calculate_next_run(job, last_run)
        await self.deps.states.update_next_run(job.id, next_run)

        if next_run is None:
            logger.info(f"Job {job.id}: no automatic run scheduled")
        else:
            logger.info(f"Job {job.id}: next run at {next_run.isoformat()} (base {base.isoformat()})")
        return next_run

    async def trigger_job(self, job_id: str) -> None:
        """Start a manual run of an active job that is not already running."""
        job = await self.deps.jobs.get(job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        if job.status != JobStatusEnum.ACTIVE:
            raise ValidationError(f"job {job_id} is not active")
        if not self._dispatch(job, manual=True):
            raise ValidationError(f"job {job_id} is already running")
        logger.info(f"Job {job_id}: manual run started")

    async def restore_state(self, now: Optional[datetime] = None) -> int:
        """
        Repair schedules after a restart.

        Active scheduled jobs without a next run get one computed; runs missed
        while the engine was down are re-planned a few minutes from now.
        Returns the number of jobs touched.
        """
        now = now or get_utc_now()
        touched = 0

        for job in await self.deps.jobs.get_active():
            if isinstance(job.schedule, ManualSchedule):
                continue

            state = await self.deps.states.get(job.id)
            if state is None:
                state = await self.deps.states.create(job.id)

            next_run = ensure_utc(state.next_run_at)
            if next_run is None:
                await self.schedule_job(job)
                touched += 1
            elif next_run < now:
                delay = self.rng.uniform(
                    self.settings.missed_run_delay_min * 60,
                    self.settings.missed_run_delay_max * 60
                )
                replanned = now + timedelta(seconds=delay)
                await self.deps.states.update_next_run(job.id, replanned)
                logger.info(f"Job {job.id}: missed run at {next_run.isoformat()}, re-planned for {replanned.isoformat()}")
                touched += 1

        logger.info(f"Restored scheduler state for {touched} job(s)")
        return touched

    def _dispatch(self, job: JobModel, manual: bool) -> bool:
        if job.id in self._in_flight:
            logger.debug(f"Job {job.id}: previous run still in progress, skipping")
            return False

        self._in_flight.add(job.id)
        task = asyncio.create_task(self._run(job, manual))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self, job: JobModel, manual: bool) -> None:
        try:
            outcome = None
            failed = False
            async with self._semaphore:
                try:
                    ctx = await asyncio.wait_for(
                        self.executor.execute(job, manual=manual),
                        timeout=self.settings.pipeline_timeout
                    )
                    outcome = ctx.outcome
                except asyncio.TimeoutError:
                    failed = True
                    logger.error(f"Job {job.id}: run exceeded {self.settings.pipeline_timeout}s and was cancelled")
                except PipelineError as e:
                    failed = True
                    logger.error(f"Job {job.id}: run failed: {e}")

            if outcome != PipelineOutcome.NO_RESOURCES:
                await self.deps.states.increment_executions(job.id, failed=failed)
            await self._reschedule(job.id)
        except Exception as e:
            logger.error(f"Job {job.id}: unexpected scheduler error: {e}")
        finally:
            self._in_flight.discard(job.id)

    async def _reschedule(self, job_id: str) -> None:
        job = await self.deps.jobs.get(job_id)
        if job is None:
            return
        await self.schedule_job(job)
