# Routes module
from .jobs import router as jobs_router
from .executions import router as executions_router

__all__ = ["jobs_router", "executions_router"]
