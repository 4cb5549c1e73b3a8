"""FastAPI dependency providers for the service layer."""
from typing import AsyncIterator

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
import redis.asyncio as redis

from api.services.job_service import JobService
from api.services.publisher import PublisherService
from database.connection import get_db, get_redis
from engine.executions import ExecutionService
from engine.runner import build_dependencies


async def get_job_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis)
) -> JobService:
    """Job service bound to the current connections."""
    return JobService(db, PublisherService(redis_client))


async def get_execution_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis)
) -> AsyncIterator[ExecutionService]:
    """Execution service with a publisher session closed after the request."""
    deps = build_dependencies(db, redis_client)
    try:
        yield ExecutionService(deps)
    finally:
        await deps.publisher.close()


async def get_publisher_service(redis_client: redis.Redis = Depends(get_redis)) -> PublisherService:
    """Publisher bound to the current Redis connection."""
    return PublisherService(redis_client)
