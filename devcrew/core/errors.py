"""Exception hierarchy for orchestration failures."""
from __future__ import annotations

from typing import Optional


class DevcrewError(Exception):
    """Base class for errors raised by the orchestration core."""


class ConfigurationError(DevcrewError):
    """Missing identifiers, malformed protocol types or invalid workflow graphs."""


class BackendError(DevcrewError):
    """The model backend failed to produce a completion."""


class ParticipantError(DevcrewError):
    """An agent's ``process`` call failed inside a collaboration round."""

    def __init__(self, agent_id: str, message: str) -> None:
        super().__init__(f"Agent '{agent_id}' failed: {message}")
        self.agent_id = agent_id


class UnknownWorkerError(DevcrewError):
    """A task assignment referenced an agent that is not a session worker."""

    def __init__(self, agent_id: str, session_id: Optional[str] = None) -> None:
        where = f" in session '{session_id}'" if session_id else ""
        super().__init__(f"Unknown worker '{agent_id}'{where}")
        self.agent_id = agent_id
        self.session_id = session_id


class SessionBusyError(DevcrewError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Collaboration session '{session_id}' is already in use")
        self.session_id = session_id


class WorkflowBusyError(DevcrewError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow '{workflow_id}' is already running")
        self.workflow_id = workflow_id


class UnknownActionError(DevcrewError):
    def __init__(self, action_type: str) -> None:
        super().__init__(f"Unknown action type: {action_type}")
        self.action_type = action_type


class NotFoundError(DevcrewError, KeyError):
    """Lookup of an agent, workflow, stage or session id failed."""

    def __str__(self) -> str:
        return self.args[0] if self.args else super().__str__()


class RoundTimeoutError(DevcrewError):
    def __init__(self, session_id: str, timeout: float) -> None:
        super().__init__(f"Collaboration session '{session_id}' timed out after {timeout:g}s")
        self.session_id = session_id
        self.timeout = timeout
