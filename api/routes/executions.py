"""Execution routes: the operator side of the validation gate."""
from typing import List
from fastapi import APIRouter, Depends

from api.dependencies import get_execution_service
from api.schemas.responses import ErrorResponse, ExecutionResponse
from engine.executions import ExecutionService


router = APIRouter(
    prefix="/executions",
    tags=["executions"],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)


@router.get("/pending", response_model=List[ExecutionResponse])
async def list_pending_validations(service: ExecutionService = Depends(get_execution_service)):
    """Executions waiting for approval, oldest first."""
    executions = await service.get_pending_validations()
    return [ExecutionResponse.from_model(execution) for execution in executions]


@router.get("/{execution_id}", response_model=ExecutionResponse)
async def get_execution(execution_id: str, service: ExecutionService = Depends(get_execution_service)):
    """Get one execution."""
    return ExecutionResponse.from_model(await service.get_execution(execution_id))


@router.post("/{execution_id}/approve", response_model=ExecutionResponse)
async def approve_execution(execution_id: str, service: ExecutionService = Depends(get_execution_service)):
    """Approve an execution and publish its draft article."""
    return ExecutionResponse.from_model(await service.approve_execution(execution_id))


@router.post("/{execution_id}/reject", response_model=ExecutionResponse)
async def reject_execution(execution_id: str, service: ExecutionService = Depends(get_execution_service)):
    """Reject an execution; its article stays an unpublished draft."""
    return ExecutionResponse.from_model(await service.reject_execution(execution_id))
