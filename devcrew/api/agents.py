"""HTTP API exposing the agent registry."""
from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from devcrew.core.models import AgentDescriptor
from devcrew.orchestration.commands import CommandHandler, CommandResult
from devcrew.orchestration.registry import AgentRegistry
from devcrew.runtime import get_command_handler, get_registry

router = APIRouter(prefix="/agents", tags=["agents"])


def check(result: CommandResult) -> CommandResult:
    """Raise the HTTP error matching a command that failed with an exception."""
    if result.success or result.error_type is None:
        return result
    code = status.HTTP_404_NOT_FOUND if result.error_type == "NotFoundError" else status.HTTP_400_BAD_REQUEST
    raise HTTPException(status_code=code, detail=result.error)


class AgentCreateRequest(BaseModel):
    name: str = Field(..., description="Logical agent name")
    role: str = Field("custom", description="Roster role of the agent")
    kind: Optional[str] = Field(None, description="Catalog entry to instantiate; defaults to the role")
    agent_id: Optional[str] = None
    capabilities: List[str] = Field(default_factory=list)
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    metadata: dict = Field(default_factory=dict)


class AgentResponse(BaseModel):
    agent_id: str
    name: str
    role: str
    kind: Optional[str]
    capabilities: List[str]
    state: str
    task_count: int
    last_error: Optional[str]

    @classmethod
    def from_descriptor(cls, descriptor: AgentDescriptor) -> "AgentResponse":
        return cls(
            agent_id=descriptor.agent_id,
            name=descriptor.config.name,
            role=descriptor.config.role.value,
            kind=descriptor.config.kind,
            capabilities=sorted(cap.value for cap in descriptor.config.capabilities),
            state=descriptor.state.name,
            task_count=descriptor.task_count,
            last_error=descriptor.last_error,
        )


@router.post("", response_model=AgentResponse, status_code=status.HTTP_201_CREATED)
async def create_agent(
    request: AgentCreateRequest,
    commands: CommandHandler = Depends(get_command_handler),
    registry: AgentRegistry = Depends(get_registry),
) -> AgentResponse:
    result = check(await commands.create_agent(request.model_dump()))
    return AgentResponse.from_descriptor(registry.require(result.agent_id).descriptor)


@router.get("", response_model=List[AgentResponse])
async def list_agents(registry: AgentRegistry = Depends(get_registry)) -> List[AgentResponse]:
    return [AgentResponse.from_descriptor(desc) for desc in registry.list_agents()]


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(agent_id: str, registry: AgentRegistry = Depends(get_registry)) -> AgentResponse:
    agent = registry.get(agent_id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")
    return AgentResponse.from_descriptor(agent.descriptor)


@router.get("/{agent_id}/state")
async def get_agent_state(agent_id: str, registry: AgentRegistry = Depends(get_registry)) -> Dict[str, str]:
    agent = registry.get(agent_id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")
    return {"agent_id": agent_id, "state": agent.get_state().name}


@router.delete("/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent(agent_id: str, commands: CommandHandler = Depends(get_command_handler)) -> None:
    check(await commands.remove_agent(agent_id))
