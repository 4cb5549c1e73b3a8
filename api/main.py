"""Main FastAPI application."""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, WebSocket, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import redis.asyncio as redis

from database.connection import DatabaseConnection, get_redis
from api.dependencies import get_publisher_service
from api.routes import jobs_router, executions_router
from api.services.publisher import PublisherService
from api.websocket import websocket_endpoint, redis_subscriber
from shared.config import settings
from shared.errors import NotFoundError, ValidationError
from shared.utils import configure_logging

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

# Background task for Redis subscriber
subscriber_task = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global subscriber_task

    # Startup
    await DatabaseConnection.init_mongo()
    await DatabaseConnection.init_redis()

    # Forward engine events to WebSocket clients
    redis_client = await get_redis()
    subscriber_task = asyncio.create_task(redis_subscriber(redis_client))

    yield

    # Shutdown
    if subscriber_task:
        subscriber_task.cancel()
        try:
            await subscriber_task
        except asyncio.CancelledError:
            pass

    await DatabaseConnection.close_connections()


# Create FastAPI app
app = FastAPI(
    title="Content Job Engine",
    description="Scheduled AI content generation and publishing to WordPress sites",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    """Bad input or an illegal status transition."""
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "detail": str(exc)}
    )


@app.exception_handler(NotFoundError)
async def not_found_exception_handler(request: Request, exc: NotFoundError):
    """A referenced record does not exist."""
    return JSONResponse(
        status_code=404,
        content={"error": "Not found", "detail": str(exc)}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)}
    )


# Include routers
app.include_router(jobs_router)
app.include_router(executions_router)


# WebSocket endpoints
@app.websocket("/ws")
async def websocket_all(websocket: WebSocket):
    """WebSocket endpoint for all engine events."""
    await websocket_endpoint(websocket)


@app.websocket("/ws/jobs/{job_id}")
async def websocket_job(websocket: WebSocket, job_id: str):
    """WebSocket endpoint for the events of one job."""
    await websocket_endpoint(websocket, job_id)


# Health check endpoint
@app.get("/health")
async def health_check(publisher: PublisherService = Depends(get_publisher_service)):
    """Health check endpoint reporting the manual trigger backlog."""
    try:
        pending = await publisher.get_queue_length()
    except redis.RedisError as e:
        logger.warning(f"Health check could not reach Redis: {e}")
        return {"status": "degraded", "pending_triggers": None}
    return {"status": "healthy", "pending_triggers": pending}


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Content Job Engine",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug
    )
