"""Job state repository: scheduling cursor and counters per job."""
from typing import Optional
from datetime import datetime
from motor.motor_asyncio import AsyncIOMotorDatabase

from api.models.job import JobStateModel


class JobStateRepository:
    """Repository for JobState records (one per job, `_id` is the job id)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.job_states

    async def create(self, job_id: str) -> JobStateModel:
        """Create a zeroed state for a new job."""
        state = JobStateModel(job_id=job_id)
        await self.collection.insert_one(state.model_dump(by_alias=True))
        return state

    async def get(self, job_id: str) -> Optional[JobStateModel]:
        """Get the state of a job."""
        doc = await self.collection.find_one({"_id": job_id})
        return JobStateModel.model_validate(doc) if doc else None

    async def update_next_run(self, job_id: str, next_run: Optional[datetime]) -> bool:
        """Set (or clear) the next planned run."""
        result = await self.collection.update_one(
            {"_id": job_id},
            {"$set": {"next_run_at": next_run}}
        )
        return result.matched_count > 0

    async def update_last_run(self, job_id: str, last_run: datetime) -> bool:
        """Record when the job last started."""
        result = await self.collection.update_one(
            {"_id": job_id},
            {"$set": {"last_run_at": last_run}}
        )
        return result.matched_count > 0

    async def increment_executions(self, job_id: str, failed: bool = False) -> bool:
        """Count a finished run, and a failure if it failed."""
        inc = {"total_executions": 1}
        if failed:
            inc["failed_executions"] = 1
        result = await self.collection.update_one({"_id": job_id}, {"$inc": inc})
        return result.matched_count > 0

    async def update_category_index(self, job_id: str, index: int) -> bool:
        """Persist the rotation cursor."""
        result = await self.collection.update_one(
            {"_id": job_id},
            {"$set": {"last_category_index": index}}
        )
        return result.matched_count > 0

    async def delete(self, job_id: str) -> bool:
        """Delete the state of a job."""
        result = await self.collection.delete_one({"_id": job_id})
        return result.deleted_count > 0
