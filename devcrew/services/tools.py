"""Tool server registry backing the action executor capability."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

from devcrew.core.errors import NotFoundError


class ToolServer(Protocol):
    name: str

    async def execute(self, action_type: str, payload: Any) -> Any:
        ...


@dataclass(slots=True)
class RecordingToolServer:
    """Tool endpoint that acknowledges requests and keeps a call log.

    Real filesystem, terminal and VCS execution live outside the orchestration
    core; this stands in for them in the default runtime and in tests.
    """

    name: str
    endpoint: str = "local://"
    latency: float = 0.0
    calls: List[Dict[str, Any]] = field(default_factory=list)

    async def execute(self, action_type: str, payload: Any) -> Any:
        if self.latency:
            await asyncio.sleep(self.latency)
        self.calls.append({"action": action_type, "payload": payload})
        return {"server": self.name, "status": "ok", "action": action_type}


class ToolRegistry:
    """Registry mapping action types to the tool server that executes them."""

    def __init__(self) -> None:
        self._servers: Dict[str, ToolServer] = {}

    def register(self, action_type: str, server: ToolServer) -> None:
        self._servers[action_type] = server

    def get(self, action_type: str) -> ToolServer:
        if action_type not in self._servers:
            raise NotFoundError(f"No tool server registered for action: {action_type}")
        return self._servers[action_type]

    def __contains__(self, action_type: str) -> bool:
        return action_type in self._servers
