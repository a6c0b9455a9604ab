"""Collaboration session routes."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from devcrew.api.agents import check
from devcrew.orchestration.commands import CommandHandler, CommandResult, SessionTicket
from devcrew.runtime import get_command_handler

router = APIRouter(prefix="/collaborations", tags=["collaborations"])


class SessionCreateRequest(BaseModel):
    protocol: str = Field(..., description="sequential, parallel or hierarchical")
    agent_ids: List[str] = Field(..., description="Participants in call order")
    session_id: Optional[str] = None
    coordinator_id: Optional[str] = Field(None, description="Leading agent for hierarchical rounds")


class SessionRunRequest(BaseModel):
    prompt: str
    context: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SessionResponse(BaseModel):
    session_id: str
    protocol: str
    agent_ids: List[str]
    rounds: int

    @classmethod
    def from_ticket(cls, ticket: SessionTicket) -> "SessionResponse":
        return cls(
            session_id=ticket.session_id,
            protocol=ticket.protocol.value,
            agent_ids=list(ticket.agent_ids),
            rounds=ticket.rounds,
        )


@router.post("", response_model=CommandResult, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: SessionCreateRequest,
    commands: CommandHandler = Depends(get_command_handler),
) -> CommandResult:
    return check(
        await commands.create_session(
            request.protocol,
            request.agent_ids,
            session_id=request.session_id,
            coordinator_id=request.coordinator_id,
        )
    )


@router.get("", response_model=List[SessionResponse])
async def list_sessions(commands: CommandHandler = Depends(get_command_handler)) -> List[SessionResponse]:
    return [SessionResponse.from_ticket(ticket) for ticket in commands.list_sessions()]


@router.post("/{session_id}/run", response_model=CommandResult)
async def run_session(
    session_id: str,
    request: SessionRunRequest,
    commands: CommandHandler = Depends(get_command_handler),
) -> CommandResult:
    """Run one collaboration round and return the aggregate output."""
    return check(
        await commands.execute_session(
            session_id,
            request.prompt,
            context=request.context,
            metadata=request.metadata,
        )
    )


@router.delete("/{session_id}", response_model=CommandResult)
async def end_session(
    session_id: str,
    commands: CommandHandler = Depends(get_command_handler),
) -> CommandResult:
    return check(await commands.end_session(session_id))
