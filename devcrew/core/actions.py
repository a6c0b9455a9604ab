"""Typed action variants, the ``[ACTION:...]`` block format and the dispatch table."""
from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from devcrew.core.errors import UnknownActionError
from devcrew.core.models import Action, ExecutedAction
from devcrew.services.tools import ToolRegistry

logger = logging.getLogger(__name__)

ACTION_BLOCK = re.compile(
    r"\[ACTION:(?P<type>[\w-]+)\](?P<body>.*?)\[/ACTION\]",
    re.IGNORECASE | re.DOTALL,
)


class ActionType(str, Enum):
    CODE_GENERATION = "code_generation"
    CODE_ANALYSIS = "code_analysis"
    VERSION_CONTROL = "version_control"
    TESTING = "testing"
    DEPLOYMENT = "deployment"
    CREATE_DOCUMENT = "create_document"
    REQUIREMENTS = "requirements"
    DESIGN = "design"
    TASK_ASSIGNMENT = "task_assignment"

    @classmethod
    def resolve(cls, value: str) -> ActionType:
        try:
            return cls(value.lower())
        except ValueError:
            raise UnknownActionError(value) from None


def decode_payload(body: str) -> Any:
    """Return the JSON value of an action body, or the stripped text."""
    body = body.strip()
    if not body:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        return body


def extract_actions(text: str) -> Tuple[str, List[Action]]:
    """Split model output into the message text and the actions it requested."""
    actions = [
        Action(type=match.group("type").lower(), payload=decode_payload(match.group("body")))
        for match in ACTION_BLOCK.finditer(text)
    ]
    message = ACTION_BLOCK.sub("", text).strip()
    return message, actions


ActionHandler = Callable[[Action], Awaitable[Any]]


class ActionDispatcher:
    """Route actions by type to registered handlers, defaulting to tool servers."""

    def __init__(self, tools: Optional[ToolRegistry] = None) -> None:
        self._tools = tools or ToolRegistry()
        self._handlers: Dict[ActionType, ActionHandler] = {
            ActionType.TASK_ASSIGNMENT: self._acknowledge_assignment,
        }

    def register(self, action_type: ActionType, handler: ActionHandler) -> None:
        self._handlers[action_type] = handler

    async def execute(self, action: Action) -> ExecutedAction:
        """Execute one action; failures are reported in the result, never raised."""
        try:
            action_type = ActionType.resolve(action.type)
            handler = self._handlers.get(action_type, self._run_tool)
            result = await handler(action)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Action %s failed: %s", action.type, exc)
            return ExecutedAction(action=action, error=str(exc))
        return ExecutedAction(action=action, result=result)

    async def execute_all(self, actions: List[Action]) -> List[ExecutedAction]:
        return [await self.execute(action) for action in actions]

    async def _run_tool(self, action: Action) -> Any:
        server = self._tools.get(action.type)
        return await server.execute(action.type, action.payload)

    @staticmethod
    async def _acknowledge_assignment(action: Action) -> Any:
        # Assignments are consumed by the collaboration orchestrator, not a tool.
        payload = action.payload
        count = len(payload) if isinstance(payload, list) else 1
        return {"status": "routed", "assignments": count}
