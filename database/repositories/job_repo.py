"""Job repository for CRUD operations on Jobs collection."""
from typing import Optional, List, Any, Dict
from datetime import datetime
from motor.motor_asyncio import AsyncIOMotorDatabase

from api.models.job import JobModel, JobStatusEnum
from shared.utils import get_utc_now


class JobRepository:
    """Repository for Job CRUD operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.jobs
        self.states = db.job_states

    @staticmethod
    def _to_document(job: JobModel) -> Dict[str, Any]:
        return job.model_dump(by_alias=True)

    async def create(self, job: JobModel) -> JobModel:
        """Insert a new job record."""
        await self.collection.insert_one(self._to_document(job))
        return job

    async def get(self, job_id: str) -> Optional[JobModel]:
        """Get a job by ID."""
        doc = await self.collection.find_one({"_id": job_id})
        return JobModel.model_validate(doc) if doc else None

    async def list(
        self,
        status: Optional[str] = None,
        site_id: Optional[str] = None,
        limit: int = 50,
        skip: int = 0
    ) -> List[JobModel]:
        """List jobs with optional status and site filters."""
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status
        if site_id:
            query["site_id"] = site_id

        cursor = self.collection.find(query).sort("created_at", -1).skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [JobModel.model_validate(doc) for doc in docs]

    async def get_active(self) -> List[JobModel]:
        """Get all active jobs."""
        cursor = self.collection.find({"status": JobStatusEnum.ACTIVE.value})
        docs = await cursor.to_list(length=None)
        return [JobModel.model_validate(doc) for doc in docs]

    async def get_due(self, before: datetime) -> List[JobModel]:
        """Get active jobs whose next run is at or before the given moment, earliest first."""
        cursor = self.states.find(
            {"next_run_at": {"$ne": None, "$lte": before}},
            {"_id": 1}
        ).sort("next_run_at", 1)
        due_ids = [doc["_id"] for doc in await cursor.to_list(length=None)]
        if not due_ids:
            return []

        cursor = self.collection.find({
            "_id": {"$in": due_ids},
            "status": JobStatusEnum.ACTIVE.value
        })
        jobs = {doc["_id"]: JobModel.model_validate(doc) for doc in await cursor.to_list(length=None)}
        return [jobs[job_id] for job_id in due_ids if job_id in jobs]

    async def update(self, job: JobModel) -> bool:
        """Overwrite a job's configuration."""
        job.updated_at = get_utc_now()
        doc = self._to_document(job)
        doc.pop("_id")
        doc.pop("created_at", None)
        result = await self.collection.update_one({"_id": job.id}, {"$set": doc})
        return result.matched_count > 0

    async def update_status(self, job_id: str, status: JobStatusEnum) -> bool:
        """Update job status."""
        result = await self.collection.update_one(
            {"_id": job_id},
            {
                "$set": {
                    "status": JobStatusEnum(status).value,
                    "updated_at": get_utc_now()
                }
            }
        )
        return result.matched_count > 0

    async def delete(self, job_id: str) -> bool:
        """Delete a job record."""
        result = await self.collection.delete_one({"_id": job_id})
        return result.deleted_count > 0
