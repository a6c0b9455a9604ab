"""Workflow lifecycle routes."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from devcrew.api.agents import check
from devcrew.core.errors import NotFoundError
from devcrew.core.models import Workflow
from devcrew.orchestration.commands import CommandHandler, CommandResult
from devcrew.runtime import get_command_handler, get_engine
from devcrew.workflow.engine import WorkflowEngine

router = APIRouter(prefix="/workflows", tags=["workflows"])


class WorkflowCreateRequest(BaseModel):
    name: Optional[str] = None
    description: str = ""
    template: Optional[str] = Field(None, description="Stock template, e.g. full_development")
    id: Optional[str] = None
    current_stage_id: Optional[str] = None
    stages: List[Dict[str, Any]] = Field(default_factory=list)


class WorkflowSummary(BaseModel):
    id: str
    name: str
    status: str
    current_stage_id: str
    progress: float
    stage_statuses: Dict[str, str]


def summarize(engine: WorkflowEngine, workflow: Workflow) -> WorkflowSummary:
    snapshot = engine.monitor_workflow(workflow)
    return WorkflowSummary(
        id=workflow.id,
        name=workflow.name,
        status=snapshot.status.value,
        current_stage_id=snapshot.current_stage_id,
        progress=snapshot.progress,
        stage_statuses={stage_id: value.value for stage_id, value in snapshot.stage_statuses.items()},
    )


@router.post("", response_model=CommandResult, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    request: WorkflowCreateRequest,
    commands: CommandHandler = Depends(get_command_handler),
) -> CommandResult:
    return check(await commands.create_workflow(request.model_dump(exclude_none=True)))


@router.get("", response_model=List[WorkflowSummary])
async def list_workflows(engine: WorkflowEngine = Depends(get_engine)) -> List[WorkflowSummary]:
    return [summarize(engine, workflow) for workflow in engine.list_workflows()]


@router.get("/{workflow_id}")
async def get_workflow(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)) -> Dict[str, Any]:
    try:
        workflow = engine.get_workflow(workflow_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return workflow.to_dict()


@router.get("/{workflow_id}/status", response_model=WorkflowSummary)
async def workflow_status(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)) -> WorkflowSummary:
    try:
        workflow = engine.get_workflow(workflow_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return summarize(engine, workflow)


@router.post("/{workflow_id}/run", response_model=CommandResult)
async def run_workflow(workflow_id: str, commands: CommandHandler = Depends(get_command_handler)) -> CommandResult:
    return check(await commands.execute_workflow(workflow_id))


@router.post("/{workflow_id}/pause", response_model=CommandResult)
async def pause_workflow(workflow_id: str, commands: CommandHandler = Depends(get_command_handler)) -> CommandResult:
    return check(await commands.pause_workflow(workflow_id))


@router.post("/{workflow_id}/stop", response_model=CommandResult)
async def stop_workflow(workflow_id: str, commands: CommandHandler = Depends(get_command_handler)) -> CommandResult:
    return check(await commands.stop_workflow(workflow_id))


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)) -> None:
    if not await engine.delete_workflow(workflow_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown workflow")
