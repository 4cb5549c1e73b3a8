"""Main engine entry point."""
import asyncio
import logging
import signal

from motor.motor_asyncio import AsyncIOMotorDatabase
import redis.asyncio as redis

from database.connection import DatabaseConnection
from database.repositories import (
    AIProviderRepository,
    ArticleRepository,
    CategoryRepository,
    ExecutionRepository,
    JobRepository,
    JobStateRepository,
    PromptRepository,
    SiteRepository,
    SiteStatsRepository,
    TopicRepository,
)
from engine.ai_client import create_generator
from engine.dependencies import EngineDependencies
from engine.events import EventPublisher, TriggerQueue
from engine.prompts import PromptRenderer
from engine.scheduler import JobScheduler
from engine.wordpress import WordPressPublisher
from shared.config import Settings, settings
from shared.utils import configure_logging

logger = logging.getLogger(__name__)


def build_dependencies(
    db: AsyncIOMotorDatabase,
    redis_client: redis.Redis,
    config: Settings = settings
) -> EngineDependencies:
    """Wire MongoDB repositories and live collaborators together."""
    return EngineDependencies(
        jobs=JobRepository(db),
        states=JobStateRepository(db),
        executions=ExecutionRepository(db),
        articles=ArticleRepository(db),
        topics=TopicRepository(db),
        sites=SiteRepository(db),
        categories=CategoryRepository(db),
        providers=AIProviderRepository(db),
        prompts=PromptRenderer(PromptRepository(db)),
        generator_factory=lambda provider: create_generator(provider, config),
        publisher=WordPressPublisher(
            timeout=config.publisher_timeout,
            max_retries=config.publisher_max_retries,
            base_delay=config.retry_base_delay
        ),
        stats=SiteStatsRepository(db),
        events=EventPublisher(redis_client, config.redis_result_channel),
        settings=config,
        trigger_source=TriggerQueue(redis_client, config.redis_trigger_queue),
    )


async def main():
    """Main entry point for the engine service."""
    configure_logging(settings.log_level)
    logger.info("Starting content engine")

    # Initialize database connections
    db = await DatabaseConnection.init_mongo()
    redis_client = await DatabaseConnection.init_redis()

    deps = build_dependencies(db, redis_client)
    scheduler = JobScheduler(deps)
    stop_event = asyncio.Event()

    # Setup signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await scheduler.start()
        await stop_event.wait()
    finally:
        await scheduler.stop()
        await deps.publisher.close()
        await DatabaseConnection.close_connections()
        logger.info("Engine shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
