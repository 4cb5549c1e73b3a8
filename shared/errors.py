"""Error taxonomy shared by the engine, repositories and API."""
from typing import Optional


class EngineError(Exception):
    """Base exception for content engine errors."""


class ValidationError(EngineError):
    """Bad input, bad configuration or an illegal status transition."""


class NotFoundError(EngineError):
    """A referenced record does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class NoResourcesError(EngineError):
    """The job's strategy has nothing left to consume."""

    def __init__(self, resource: str, message: Optional[str] = None):
        self.resource = resource
        super().__init__(message or f"no {resource} available")


class CollaboratorError(EngineError):
    """An external collaborator (AI provider, publisher, storage) failed."""

    def __init__(self, collaborator: str, message: str, status_code: int = 0):
        self.collaborator = collaborator
        self.status_code = status_code
        super().__init__(f"{collaborator}: {message}")


class PipelineError(EngineError):
    """A pipeline step failed; carries the job id and the failing step."""

    def __init__(self, job_id: str, step: str, cause: Exception):
        self.job_id = job_id
        self.step = step
        self.cause = cause
        super().__init__(f"job {job_id} failed at step '{step}': {cause}")
