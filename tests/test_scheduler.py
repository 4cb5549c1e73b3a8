"""Scheduler tests."""
import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest

from api.models import DailySchedule, IntervalSchedule, ManualSchedule, OnceSchedule, JobStatusEnum
from engine.pipeline import PipelineContext
from engine.scheduler import JobScheduler, ScheduleCalculator, validate_schedule
from shared.errors import CollaboratorError, NotFoundError, ValidationError


NOW = datetime(2024, 2, 6, 10, 0, tzinfo=timezone.utc)  # a Tuesday


class TestScheduleCalculator:
    """Tests for ScheduleCalculator."""

    @pytest.fixture
    def calculator(self):
        return ScheduleCalculator("UTC", random.Random(1))

    def test_manual_has_no_next_run(self, calculator, make_job):
        """Test manual jobs are never scheduled."""
        job = make_job(schedule=ManualSchedule())

        assert calculator.calculate_next_run(job, NOW, now=NOW) == (None, None)

    def test_once_in_future(self, calculator, make_job):
        """Test a future once schedule runs at its moment."""
        at = NOW + timedelta(days=2)
        job = make_job(schedule=OnceSchedule(execute_at=at))

        assert calculator.calculate_next_run(job, None, now=NOW) == (at, at)

    def test_once_in_past(self, calculator, make_job):
        """Test a once schedule that already passed yields nothing."""
        job = make_job(schedule=OnceSchedule(execute_at=NOW - timedelta(minutes=1)))

        assert calculator.calculate_next_run(job, None, now=NOW) == (None, None)

    @pytest.mark.parametrize("unit,delta", [
        ("minutes", timedelta(minutes=45)),
        ("hours", timedelta(hours=45)),
        ("days", timedelta(days=45)),
        ("weeks", timedelta(weeks=45)),
    ])
    def test_interval_from_last_run(self, calculator, make_job, unit, delta):
        """Test intervals are counted from the last run."""
        last_run = NOW - timedelta(minutes=10)
        job = make_job(schedule=IntervalSchedule(value=45, unit=unit))

        base, _ = calculator.calculate_next_run(job, last_run, now=NOW)

        assert base == last_run + delta

    def test_interval_without_last_run_counts_from_now(self, calculator, make_job):
        """Test a job that never ran starts counting now."""
        job = make_job(schedule=IntervalSchedule(value=6, unit="hours"))

        base, _ = calculator.calculate_next_run(job, None, now=NOW)

        assert base == NOW + timedelta(hours=6)

    def test_interval_skips_periods_missed_while_paused(self, calculator, make_job):
        """Test an old last run yields the first slot of its cadence after now."""
        last_run = NOW - timedelta(days=14, minutes=30)
        job = make_job(schedule=IntervalSchedule(value=6, unit="hours"))

        base, _ = calculator.calculate_next_run(job, last_run, now=NOW)

        assert base == NOW + timedelta(hours=5, minutes=30)

    def test_interval_due_exactly_now_moves_forward(self, calculator, make_job):
        """Test a slot falling exactly on now is not reused."""
        job = make_job(schedule=IntervalSchedule(value=2, unit="hours"))

        base, _ = calculator.calculate_next_run(job, NOW - timedelta(hours=4), now=NOW)

        assert base == NOW + timedelta(hours=2)

    def test_daily_skips_to_allowed_weekday(self, calculator, make_job):
        """Test Tuesday 10:00 with Mon/Wed/Fri at 09:00 gives Wednesday 09:00."""
        job = make_job(schedule=DailySchedule(hour=9, minute=0, weekdays=[1, 3, 5]))

        base, _ = calculator.calculate_next_run(job, NOW, now=NOW)

        assert base == datetime(2024, 2, 7, 9, 0, tzinfo=timezone.utc)
        assert base.isoweekday() == 3

    def test_daily_later_today(self, calculator, make_job):
        """Test a slot later the same day is used when the weekday allows it."""
        job = make_job(schedule=DailySchedule(hour=18, minute=30, weekdays=[2]))

        base, _ = calculator.calculate_next_run(job, NOW, now=NOW)

        assert base == datetime(2024, 2, 6, 18, 30, tzinfo=timezone.utc)

    def test_daily_sunday_as_zero_or_seven(self, calculator, make_job):
        """Test both 0 and 7 mean Sunday."""
        for sunday in (0, 7):
            job = make_job(schedule=DailySchedule(hour=8, weekdays=[sunday]))
            base, _ = calculator.calculate_next_run(job, NOW, now=NOW)
            assert base == datetime(2024, 2, 11, 8, 0, tzinfo=timezone.utc)

    def test_daily_without_weekdays_runs_every_day(self, calculator, make_job):
        """Test an empty weekday list allows every day."""
        job = make_job(schedule=DailySchedule(hour=9))

        base, _ = calculator.calculate_next_run(job, NOW, now=NOW)

        assert base == datetime(2024, 2, 7, 9, 0, tzinfo=timezone.utc)

    def test_daily_counts_from_now_after_old_last_run(self, calculator, make_job):
        """Test a daily job last run two weeks ago gets its next slot after now."""
        job = make_job(schedule=DailySchedule(hour=9, minute=0, weekdays=[1, 3, 5]))

        base, _ = calculator.calculate_next_run(job, NOW - timedelta(days=14), now=NOW)

        assert base == datetime(2024, 2, 7, 9, 0, tzinfo=timezone.utc)

    def test_daily_uses_configured_timezone(self, make_job):
        """Test local wall-clock time is converted to UTC."""
        calculator = ScheduleCalculator("America/New_York")
        job = make_job(schedule=DailySchedule(hour=9))

        base, _ = calculator.calculate_next_run(job, NOW, now=NOW)

        # 10:00 UTC is 05:00 in New York (EST), so 09:00 local is still ahead
        assert base == datetime(2024, 2, 6, 14, 0, tzinfo=timezone.utc)

    def test_jitter_stays_within_window(self, calculator, make_job):
        """Test jittered times always fall in [base, base + jitter]."""
        job = make_job(jitter_enabled=True, jitter_minutes=30)
        base = NOW + timedelta(hours=6)

        samples = [calculator.apply_jitter(job, base) for _ in range(10000)]

        assert all(base <= s <= base + timedelta(minutes=30) for s in samples)
        assert len(set(samples)) > 1

    def test_jitter_disabled(self, calculator, make_job):
        """Test no offset is added when jitter is off."""
        job = make_job(jitter_enabled=False, jitter_minutes=30)

        assert calculator.apply_jitter(job, NOW) == NOW


class TestValidateSchedule:
    """Tests for validate_schedule."""

    @pytest.mark.parametrize("schedule", [
        OnceSchedule(execute_at=NOW - timedelta(seconds=1)),
        IntervalSchedule(value=0, unit="hours"),
        DailySchedule(hour=24),
        DailySchedule(hour=9, minute=60),
        DailySchedule(hour=9, weekdays=[8]),
    ])
    def test_invalid_schedules(self, schedule):
        """Test schedules that can never run are rejected."""
        with pytest.raises(ValidationError):
            validate_schedule(schedule, now=NOW)

    @pytest.mark.parametrize("schedule", [
        ManualSchedule(),
        OnceSchedule(execute_at=NOW + timedelta(hours=1)),
        IntervalSchedule(value=1, unit="minutes"),
        DailySchedule(hour=0, minute=59, weekdays=[0, 7]),
    ])
    def test_valid_schedules(self, schedule):
        """Test well-formed schedules pass."""
        validate_schedule(schedule, now=NOW)


class BlockingExecutor:
    """Executor whose runs stay in flight until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.calls = []

    async def execute(self, job, manual=False):
        self.calls.append((job.id, manual))
        await self.release.wait()
        return PipelineContext(job=job, manual=manual)


class TestJobScheduler:
    """Tests for JobScheduler."""

    @pytest.fixture
    def scheduler(self, engine_deps):
        return JobScheduler(engine_deps, rng=random.Random(5))

    @pytest.mark.asyncio
    async def test_tick_runs_due_job_and_reschedules(self, scheduler, engine_deps, stored_job):
        """Test a due job is executed, counted and given its next run."""
        job = await stored_job()
        await engine_deps.states.update_next_run(job.id, NOW)

        started = await scheduler.tick(now=NOW + timedelta(seconds=1))
        await scheduler.wait_idle()

        state = engine_deps.states.items[job.id]
        assert started == 1
        assert state.total_executions == 1
        assert state.failed_executions == 0
        assert state.next_run_at == state.last_run_at + timedelta(hours=6)
        assert not scheduler.is_running(job.id)

    @pytest.mark.asyncio
    async def test_tick_ignores_jobs_not_due(self, scheduler, engine_deps, stored_job):
        """Test future and unscheduled jobs are left alone."""
        job = await stored_job()
        await engine_deps.states.update_next_run(job.id, NOW + timedelta(hours=1))
        await stored_job(id="job_unscheduled")

        assert await scheduler.tick(now=NOW) == 0

    @pytest.mark.asyncio
    async def test_failed_run_is_counted(self, scheduler, engine_deps, stored_job, generator):
        """Test a failing pipeline increments the failure counter without stopping the scheduler."""
        job = await stored_job()
        await engine_deps.states.update_next_run(job.id, NOW)
        generator.error = CollaboratorError("ai", "rate limited", status_code=429)

        await scheduler.tick(now=NOW)
        await scheduler.wait_idle()

        state = engine_deps.states.items[job.id]
        assert state.total_executions == 1
        assert state.failed_executions == 1
        assert state.next_run_at is not None

    @pytest.mark.asyncio
    async def test_exhausted_job_is_paused_and_not_counted(self, scheduler, engine_deps, stored_job):
        """Test a run without topics pauses the job and leaves counters alone."""
        job = await stored_job()
        for topic_id in job.topics:
            await engine_deps.topics.mark_used(job.site_id, topic_id)
        await engine_deps.states.update_next_run(job.id, NOW)

        await scheduler.tick(now=NOW)
        await scheduler.wait_idle()

        state = engine_deps.states.items[job.id]
        assert engine_deps.jobs.items[job.id].status == JobStatusEnum.PAUSED
        assert state.total_executions == 0
        assert state.next_run_at is None

    @pytest.mark.asyncio
    async def test_job_never_runs_twice_at_once(self, engine_deps, stored_job):
        """Test a job still in flight is neither re-dispatched nor triggered."""
        executor = BlockingExecutor()
        scheduler = JobScheduler(engine_deps, executor=executor)
        job = await stored_job()
        await engine_deps.states.update_next_run(job.id, NOW)

        assert await scheduler.tick(now=NOW) == 1
        await asyncio.sleep(0)
        assert scheduler.is_running(job.id)
        assert await scheduler.tick(now=NOW) == 0
        with pytest.raises(ValidationError):
            await scheduler.trigger_job(job.id)

        executor.release.set()
        await scheduler.wait_idle()
        assert executor.calls == [(job.id, False)]
        assert scheduler.running_jobs == set()

    @pytest.mark.asyncio
    async def test_trigger_from_queue(self, engine_deps, stored_job):
        """Test queued manual triggers are run as manual executions."""
        executor = BlockingExecutor()
        executor.release.set()
        scheduler = JobScheduler(engine_deps, executor=executor)
        job = await stored_job(schedule=ManualSchedule())
        await engine_deps.trigger_source.push(job.id)
        await engine_deps.trigger_source.push("job_missing")

        started = await scheduler.tick(now=NOW)
        await scheduler.wait_idle()

        assert started == 1
        assert executor.calls == [(job.id, True)]
        assert engine_deps.trigger_source.queue == []

    @pytest.mark.asyncio
    async def test_trigger_rejects_missing_and_paused_jobs(self, scheduler, stored_job):
        """Test manual triggers need an existing active job."""
        job = await stored_job(status="paused")

        with pytest.raises(NotFoundError):
            await scheduler.trigger_job("job_missing")
        with pytest.raises(ValidationError):
            await scheduler.trigger_job(job.id)

    @pytest.mark.asyncio
    async def test_schedule_paused_job_clears_next_run(self, scheduler, engine_deps, stored_job):
        """Test paused jobs have no next run."""
        job = await stored_job(status="paused")
        await engine_deps.states.update_next_run(job.id, NOW)

        assert await scheduler.schedule_job(job) is None
        assert engine_deps.states.items[job.id].next_run_at is None

    @pytest.mark.asyncio
    async def test_restore_state(self, scheduler, engine_deps, stored_job):
        """Test missed runs are re-planned and missing ones computed."""
        missed = await stored_job(id="job_missed")
        await engine_deps.states.update_next_run(missed.id, NOW - timedelta(hours=3))
        unscheduled = await stored_job(id="job_new")
        future = await stored_job(id="job_future")
        await engine_deps.states.update_next_run(future.id, NOW + timedelta(hours=3))
        await stored_job(id="job_manual", schedule=ManualSchedule())

        touched = await scheduler.restore_state(now=NOW)

        replanned = engine_deps.states.items[missed.id].next_run_at
        assert touched == 2
        assert NOW + timedelta(minutes=1) <= replanned <= NOW + timedelta(minutes=5)
        assert engine_deps.states.items[unscheduled.id].next_run_at is not None
        assert engine_deps.states.items[future.id].next_run_at == NOW + timedelta(hours=3)
        assert engine_deps.states.items["job_manual"].next_run_at is None

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler, engine_deps, stored_job):
        """Test the polling loop runs due jobs and stops cleanly."""
        job = await stored_job()
        await engine_deps.states.update_next_run(job.id, NOW)
        engine_deps.settings.missed_run_delay_min = 0
        engine_deps.settings.missed_run_delay_max = 0

        await scheduler.start()
        for _ in range(100):
            if engine_deps.states.items[job.id].total_executions:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert engine_deps.states.items[job.id].total_executions == 1
