"""Prompt preambles that tell an agent where it sits in a collaboration round."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from devcrew.core import metadata as meta
from devcrew.core.models import AgentRole, CollaborationType


ROLE_TITLES = {
    AgentRole.ANALYST: "requirements analyst",
    AgentRole.ARCHITECT: "architect",
    AgentRole.DEVELOPER: "developer",
    AgentRole.TESTER: "tester",
    AgentRole.OPS: "operations engineer",
    AgentRole.WRITER: "technical writer",
    AgentRole.CUSTOM: "custom role",
}

ASSIGNMENT_FORMAT = """Assign work using one line per worker:

<worker-id>: <task description>

or as an action block:

[ACTION:task_assignment]
[
  {"assignedTo": "<worker-id>", "description": "<task description>"}
]
[/ACTION]"""


def role_title(role: Any) -> str:
    try:
        return ROLE_TITLES[AgentRole(role)]
    except ValueError:
        return str(role)


def describe(participant: Mapping[str, Any], with_id: bool = False) -> str:
    label = f"{participant['name']} ({role_title(participant['role'])}"
    if with_id:
        label += f", id: {participant['id']}"
    return label + ")"


def _find(participants: List[Dict[str, Any]], agent_id: Optional[str]) -> Optional[Dict[str, Any]]:
    return next((p for p in participants if p["id"] == agent_id), None)


def collaboration_preamble(metadata: Mapping[str, Any]) -> str:
    """Return the protocol-specific preamble for a hop, or an empty string."""
    kind = metadata.get(meta.COLLABORATION_TYPE)
    if not kind:
        return ""

    participants: List[Dict[str, Any]] = list(metadata.get(meta.PARTICIPANTS, []))
    roster = "\n".join(f"- {describe(p)}" for p in participants)
    lines: List[str] = []

    if kind == CollaborationType.SEQUENTIAL.value:
        lines.append("You are part of a sequential collaboration; agents handle the task in turn.")
        if roster:
            lines.append(f"Participants:\n{roster}")
        previous = _find(participants, metadata.get(meta.PREVIOUS_AGENT_ID))
        if previous:
            lines.append(f"Your input comes from {describe(previous)}. Continue from it.")
        following = _find(participants, metadata.get(meta.NEXT_AGENT_ID))
        if following:
            lines.append(f"Your output goes to {describe(following)}. Make it useful to them.")
        else:
            lines.append("You are the last participant; your output is the final result.")

    elif kind == CollaborationType.PARALLEL.value:
        lines.append("You are part of a parallel collaboration; every agent handles the same task.")
        if roster:
            lines.append(f"Participants:\n{roster}")
        lines.append("Answer from your own specialty without waiting for the others.")

    elif kind == CollaborationType.HIERARCHICAL.value:
        coordinator_id = metadata.get(meta.COORDINATOR_AGENT_ID)
        workers = [p for p in participants if p["id"] != coordinator_id]
        if metadata.get(meta.IS_INTEGRATION):
            lines.append("You coordinate this collaboration and must now integrate the workers' results.")
            for result in metadata.get(meta.WORKER_RESULTS, []):
                worker = _find(participants, result.get("agent_id"))
                label = describe(worker) if worker else result.get("agent_id")
                if result.get("error"):
                    lines.append(f"{label} failed: {result['error']}")
                else:
                    lines.append(f"Output of {label}:\n{result.get('output', '')}")
            lines.append("Combine them into one coherent, complete answer.")
        elif metadata.get(meta.IS_COORDINATOR):
            lines.append("You coordinate this collaboration: split the task and assign it to workers.")
            worker_roster = "\n".join(f"- {describe(w, with_id=True)}" for w in workers)
            if worker_roster:
                lines.append(f"Available workers:\n{worker_roster}")
            lines.append(ASSIGNMENT_FORMAT)
        else:
            coordinator = _find(participants, coordinator_id)
            label = describe(coordinator) if coordinator else coordinator_id
            lines.append(f"You are a worker; {label} assigned you the task below.")
            lines.append("Focus on it; your output is returned to the coordinator.")

    return "\n\n".join(lines)
