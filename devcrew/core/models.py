"""Core data models shared across agents, collaboration and workflow components."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Set


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentRole(str, Enum):
    """Roster roles an agent can play."""

    ANALYST = "analyst"
    ARCHITECT = "architect"
    DEVELOPER = "developer"
    TESTER = "tester"
    OPS = "ops"
    WRITER = "writer"
    CUSTOM = "custom"


class AgentCapability(str, Enum):
    REQUIREMENTS_ANALYSIS = "requirements_analysis"
    SYSTEM_DESIGN = "system_design"
    CODE_GENERATION = "code_generation"
    CODE_REVIEW = "code_review"
    TESTING = "testing"
    DEPLOYMENT = "deployment"
    DOCUMENTATION = "documentation"


class AgentState(Enum):
    """Lifecycle states for an agent.

    ``initialize`` moves IDLE -> INITIALIZING -> IDLE | ERROR and ``process``
    moves (any) -> PROCESSING -> IDLE | ERROR.
    """

    IDLE = auto()
    INITIALIZING = auto()
    PROCESSING = auto()
    ERROR = auto()


class CollaborationType(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    HIERARCHICAL = "hierarchical"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"


class StageStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"


class WorkflowStatus(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class AgentConfig:
    """Configuration payload used by the registry when instantiating an agent."""

    name: str
    role: AgentRole = AgentRole.CUSTOM
    capabilities: Set[AgentCapability] = field(default_factory=set)
    agent_id: Optional[str] = None
    kind: Optional[str] = None
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def catalog_key(self) -> str:
        """Key used to look up the agent class; ``kind`` overrides the role."""
        return self.kind or self.role.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "role": self.role.value,
            "capabilities": sorted(cap.value for cap in self.capabilities),
            "agent_id": self.agent_id,
            "kind": self.kind,
            "system_prompt": self.system_prompt,
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AgentConfig:
        return cls(
            name=data["name"],
            role=AgentRole(data.get("role", AgentRole.CUSTOM.value)),
            capabilities={AgentCapability(cap) for cap in data.get("capabilities", [])},
            agent_id=data.get("agent_id"),
            kind=data.get("kind"),
            system_prompt=data.get("system_prompt"),
            model=data.get("model"),
            temperature=float(data.get("temperature", 0.7)),
            max_tokens=data.get("max_tokens"),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass(slots=True)
class AgentDescriptor:
    """Descriptor kept for each registered agent."""

    agent_id: str
    config: AgentConfig
    state: AgentState = AgentState.IDLE
    task_count: int = 0
    last_error: Optional[str] = None


@dataclass(slots=True)
class FileRef:
    path: str
    content: str


@dataclass(slots=True)
class Action:
    """Opaque side-effect request; only ``type`` is interpreted, for routing."""

    type: str
    payload: Any = None


@dataclass(slots=True)
class ExecutedAction:
    action: Action
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class AgentInput:
    prompt: str
    context: Optional[str] = None
    files: List[FileRef] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AgentOutput:
    response: str
    actions: List[Action] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    executed_actions: List[ExecutedAction] = field(default_factory=list)


@dataclass(slots=True)
class TaskAssignment:
    """An ``(agent_id, task)`` pair recovered from coordinator output."""

    agent_id: str
    task: str


@dataclass(slots=True)
class CollaborationSession:
    """Ephemeral binding of a protocol to participants for one orchestration call."""

    session_id: str
    protocol: CollaborationType
    participants: List[Any]
    started_at: datetime = field(default_factory=utcnow)

    @property
    def participant_ids(self) -> List[str]:
        return [agent.agent_id for agent in self.participants]


@dataclass(slots=True)
class TaskCollaboration:
    """Marks a workflow task as multi-agent work."""

    protocol: CollaborationType
    participants: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"protocol": self.protocol.value, "participants": list(self.participants)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TaskCollaboration:
        return cls(
            protocol=CollaborationType(data["protocol"]),
            participants=list(data.get("participants", [])),
        )


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    assigned_to: Optional[str] = None
    collaboration: Optional[TaskCollaboration] = None
    result: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def touch(self, status: TaskStatus) -> None:
        self.status = status
        self.updated_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "assigned_to": self.assigned_to,
            "collaboration": self.collaboration.to_dict() if self.collaboration else None,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Task:
        collaboration = data.get("collaboration")
        task = cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", ""),
            status=TaskStatus(data.get("status", TaskStatus.TODO.value)),
            assigned_to=data.get("assigned_to"),
            collaboration=TaskCollaboration.from_dict(collaboration) if collaboration else None,
            result=data.get("result"),
            error=data.get("error"),
        )
        if "created_at" in data:
            task.created_at = datetime.fromisoformat(data["created_at"])
        if "updated_at" in data:
            task.updated_at = datetime.fromisoformat(data["updated_at"])
        return task


@dataclass(slots=True)
class WorkflowStage:
    """Node of the workflow DAG.

    ``started=False`` implies ``completed=False`` and ``completed=True`` implies
    every task is DONE.
    """

    id: str
    name: str
    tasks: List[Task] = field(default_factory=list)
    role: Optional[AgentRole] = None
    next_stages: List[str] = field(default_factory=list)
    previous_stages: List[str] = field(default_factory=list)
    started: bool = False
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "tasks": [task.to_dict() for task in self.tasks],
            "role": self.role.value if self.role else None,
            "next_stages": list(self.next_stages),
            "previous_stages": list(self.previous_stages),
            "started": self.started,
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> WorkflowStage:
        role = data.get("role")
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            tasks=[Task.from_dict(task) for task in data.get("tasks", [])],
            role=AgentRole(role) if role else None,
            next_stages=list(data.get("next_stages", [])),
            previous_stages=list(data.get("previous_stages", [])),
            started=bool(data.get("started", False)),
            completed=bool(data.get("completed", False)),
        )


@dataclass(slots=True)
class Workflow:
    id: str
    name: str
    stages: List[WorkflowStage]
    current_stage_id: str
    description: str = ""
    status: WorkflowStatus = WorkflowStatus.NOT_STARTED
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "stages": [stage.to_dict() for stage in self.stages],
            "current_stage_id": self.current_stage_id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Workflow:
        workflow = cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            stages=[WorkflowStage.from_dict(stage) for stage in data.get("stages", [])],
            current_stage_id=data["current_stage_id"],
            status=WorkflowStatus(data.get("status", WorkflowStatus.NOT_STARTED.value)),
        )
        if "created_at" in data:
            workflow.created_at = datetime.fromisoformat(data["created_at"])
        if "updated_at" in data:
            workflow.updated_at = datetime.fromisoformat(data["updated_at"])
        return workflow


@dataclass(slots=True)
class StageError:
    task_id: str
    message: str


@dataclass(slots=True)
class StageResult:
    stage_id: str
    status: StageStatus
    completed_tasks: int
    total_tasks: int
    errors: List[StageError] = field(default_factory=list)


@dataclass(slots=True)
class WorkflowSnapshot:
    """Read-only progress view of a workflow."""

    workflow_id: str
    status: WorkflowStatus
    current_stage_id: str
    progress: float
    stage_statuses: Dict[str, StageStatus] = field(default_factory=dict)
