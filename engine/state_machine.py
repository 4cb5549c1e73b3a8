"""Execution status transitions and lifecycle timestamps."""
import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from api.models.execution import ExecutionModel, ExecutionStatusEnum as Status
from shared.errors import ValidationError
from shared.utils import get_utc_now

logger = logging.getLogger(__name__)


# Allowed targets for each status. Generating -> Publishing is the direct
# path of jobs that skip operator validation.
TRANSITIONS: Dict[Status, FrozenSet[Status]] = {
    Status.PENDING: frozenset({Status.GENERATING, Status.FAILED}),
    Status.GENERATING: frozenset({Status.PENDING_VALIDATION, Status.PUBLISHING, Status.FAILED}),
    Status.PENDING_VALIDATION: frozenset({Status.VALIDATED, Status.REJECTED, Status.FAILED}),
    Status.VALIDATED: frozenset({Status.PUBLISHING, Status.FAILED}),
    Status.PUBLISHING: frozenset({Status.PUBLISHED, Status.FAILED}),
    Status.PUBLISHED: frozenset(),
    Status.REJECTED: frozenset(),
    Status.FAILED: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[Status] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)


def is_terminal(status: Status) -> bool:
    """Whether no further transition is possible from `status`."""
    return Status(status) in TERMINAL_STATUSES


def can_transition(current: Status, target: Status, requires_validation: bool = False) -> bool:
    """Whether `current -> target` is allowed."""
    current, target = Status(current), Status(target)
    if target not in TRANSITIONS[current]:
        return False
    # Gated executions must go through PendingValidation -> Validated
    if requires_validation and current == Status.GENERATING and target == Status.PUBLISHING:
        return False
    return True


def validate_transition(current: Status, target: Status, requires_validation: bool = False) -> None:
    """Raise ValidationError unless `current -> target` is allowed."""
    if not can_transition(current, target, requires_validation):
        raise ValidationError(
            f"invalid status transition from '{Status(current).value}' to '{Status(target).value}'"
        )


def apply_transition(
    execution: ExecutionModel,
    target: Status,
    now: Optional[datetime] = None,
    requires_validation: bool = False,
    error_message: Optional[str] = None
) -> ExecutionModel:
    """
    Move an execution to `target` and stamp the matching milestone.

    On a rejected transition the execution is left untouched and
    ValidationError is raised. The caller persists the result.
    """
    target = Status(target)
    validate_transition(execution.status, target, requires_validation)

    now = now or get_utc_now()
    previous = execution.status
    execution.status = target

    if target == Status.PENDING_VALIDATION:
        execution.generated_at = now
    elif target == Status.VALIDATED:
        execution.validated_at = now
    elif target == Status.PUBLISHED:
        execution.published_at = now
        execution.completed_at = now
    elif target in (Status.REJECTED, Status.FAILED):
        execution.completed_at = now

    if error_message is not None:
        execution.error_message = error_message

    logger.debug(f"Execution {execution.id}: {Status(previous).value} -> {target.value}")
    return execution
