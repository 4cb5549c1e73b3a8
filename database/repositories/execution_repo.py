"""Execution repository: run history of jobs."""
from typing import Optional, List, Tuple
from datetime import datetime
from motor.motor_asyncio import AsyncIOMotorDatabase

from api.models.execution import ExecutionModel, ExecutionStatusEnum


class ExecutionRepository:
    """Repository for Execution records. Executions are never deleted."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.executions

    async def create(self, execution: ExecutionModel) -> ExecutionModel:
        """Insert a new execution."""
        await self.collection.insert_one(execution.model_dump(by_alias=True))
        return execution

    async def get(self, execution_id: str) -> Optional[ExecutionModel]:
        """Get an execution by ID."""
        doc = await self.collection.find_one({"_id": execution_id})
        return ExecutionModel.model_validate(doc) if doc else None

    async def update(self, execution: ExecutionModel) -> bool:
        """Write back every mutable field of an execution."""
        doc = execution.model_dump(by_alias=True)
        doc.pop("_id")
        result = await self.collection.update_one({"_id": execution.id}, {"$set": doc})
        return result.matched_count > 0

    async def list_by_job(self, job_id: str, limit: int = 50, offset: int = 0) -> List[ExecutionModel]:
        """List executions of a job, newest first."""
        cursor = (
            self.collection.find({"job_id": job_id})
            .sort("started_at", -1)
            .skip(offset)
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        return [ExecutionModel.model_validate(doc) for doc in docs]

    async def get_pending_validation(self, limit: int = 100) -> List[ExecutionModel]:
        """Executions waiting for an operator decision, oldest first."""
        cursor = (
            self.collection.find({"status": ExecutionStatusEnum.PENDING_VALIDATION.value})
            .sort("started_at", 1)
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        return [ExecutionModel.model_validate(doc) for doc in docs]

    async def count_by_job(self, job_id: str, status: Optional[ExecutionStatusEnum] = None) -> int:
        """Count executions of a job, optionally by status."""
        query = {"job_id": job_id}
        if status is not None:
            query["status"] = ExecutionStatusEnum(status).value
        return await self.collection.count_documents(query)

    async def get_average_generation_time(self, job_id: str) -> float:
        """Average generation time in milliseconds over runs that generated something."""
        pipeline = [
            {"$match": {"job_id": job_id, "generation_time_ms": {"$gt": 0}}},
            {"$group": {"_id": None, "avg": {"$avg": "$generation_time_ms"}}}
        ]
        result = await self.collection.aggregate(pipeline).to_list(length=1)
        if not result or result[0]["avg"] is None:
            return 0.0
        return float(result[0]["avg"])

    async def get_totals(self, job_id: str, since: datetime) -> Tuple[int, float]:
        """Total tokens and cost of a job's executions started since the given moment."""
        pipeline = [
            {"$match": {"job_id": job_id, "started_at": {"$gte": since}}},
            {"$group": {
                "_id": None,
                "tokens": {"$sum": "$tokens_used"},
                "cost": {"$sum": "$cost_usd"}
            }}
        ]
        result = await self.collection.aggregate(pipeline).to_list(length=1)
        if not result:
            return 0, 0.0
        return int(result[0]["tokens"]), float(result[0]["cost"])
