"""Redis-backed pipeline events and manual trigger queue."""
import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from shared.utils import format_datetime, get_utc_now

logger = logging.getLogger(__name__)


class EventType:
    """Pipeline event types published on the result channel."""
    PIPELINE_STARTED = "pipeline_started"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    PIPELINE_COMPLETED = "pipeline_completed"
    PIPELINE_PAUSED = "pipeline_paused"
    PIPELINE_FAILED = "pipeline_failed"


class EventPublisher:
    """Publishes pipeline events for WebSocket subscribers."""

    def __init__(self, redis_client: redis.Redis, channel: str):
        self.redis = redis_client
        self.channel = channel

    async def publish(self, event_type: str, job_id: str, **payload: Any) -> None:
        """Publish one event. Delivery problems are logged, never raised."""
        message = {
            "type": event_type,
            "job_id": job_id,
            "timestamp": format_datetime(get_utc_now()),
            **payload
        }
        try:
            await self.redis.publish(self.channel, json.dumps(message, default=str))
        except redis.RedisError as e:
            logger.warning(f"Failed to publish {event_type} for job {job_id}: {e}")


class TriggerQueue:
    """Queue of manual run requests pushed by the API."""

    def __init__(self, redis_client: redis.Redis, queue_name: str):
        self.redis = redis_client
        self.queue_name = queue_name

    async def push(self, job_id: str) -> None:
        """Request a manual run of a job."""
        trigger = {"job_id": job_id, "requested_at": format_datetime(get_utc_now())}
        await self.redis.lpush(self.queue_name, json.dumps(trigger))

    async def pop(self) -> Optional[str]:
        """Take the oldest pending request, returning its job id."""
        while True:
            result = await self.redis.rpop(self.queue_name)
            if not result:
                return None
            try:
                return json.loads(result)["job_id"]
            except (json.JSONDecodeError, KeyError, TypeError):
                logger.error(f"Failed to parse trigger: {result}")
