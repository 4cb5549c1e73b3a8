"""Publisher service for pushing manual triggers and job updates to Redis."""
import redis.asyncio as redis

from engine.events import EventPublisher, TriggerQueue
from shared.config import settings


class PublisherService:
    """Service for handing work to the engine and notifying WebSocket clients."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client
        self.triggers = TriggerQueue(redis_client, settings.redis_trigger_queue)
        self.events = EventPublisher(redis_client, settings.redis_result_channel)

    async def publish_trigger(self, job_id: str) -> None:
        """Ask the engine to run a job now."""
        await self.triggers.push(job_id)

    async def get_queue_length(self) -> int:
        """Number of manual triggers the engine has not picked up yet."""
        return await self.redis.llen(settings.redis_trigger_queue)

    async def publish_job_update(self, job_id: str, status: str, message: str = "") -> None:
        """Publish a job status change for WebSocket notifications."""
        await self.events.publish("job_update", job_id, status=status, message=message)
