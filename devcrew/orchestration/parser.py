"""Recover ``(worker, task)`` assignments from a coordinator's free-text output.

The structured ``[ACTION:task_assignment]`` block wins when it parses; otherwise
``worker-id: task`` header lines are scanned, with following lines appended to
the current task.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional

from devcrew.core.actions import ActionType
from devcrew.core.models import AgentOutput, TaskAssignment

logger = logging.getLogger(__name__)

ASSIGNMENT_BLOCK = re.compile(
    r"\[ACTION:\s*task_assignment\s*\](?P<body>.*?)\[/ACTION\]",
    re.IGNORECASE | re.DOTALL,
)
HEADER_LINE = re.compile(r"^(?P<agent>[A-Za-z0-9_-]+):\s*(?P<task>.*)$")


class AssignmentFormatError(ValueError):
    pass


def _from_records(records: Any) -> List[TaskAssignment]:
    if isinstance(records, dict):
        records = [records]
    if not isinstance(records, list):
        raise AssignmentFormatError(f"expected a list of assignments, got {type(records).__name__}")
    assignments: List[TaskAssignment] = []
    for record in records:
        if not isinstance(record, dict):
            raise AssignmentFormatError(f"assignment must be an object, got {record!r}")
        try:
            agent_id = record["assignedTo"]
            description = record["description"]
        except KeyError as exc:
            raise AssignmentFormatError(f"assignment is missing {exc.args[0]!r}") from None
        assignments.append(TaskAssignment(agent_id=str(agent_id).strip(), task=str(description).strip()))
    return assignments


def parse_structured(text: str) -> Optional[List[TaskAssignment]]:
    """Assignments from the first action block, or None when absent or malformed."""
    match = ASSIGNMENT_BLOCK.search(text)
    if match is None:
        return None
    try:
        return _from_records(json.loads(match.group("body").strip()))
    except (json.JSONDecodeError, AssignmentFormatError) as exc:
        logger.warning("Malformed task assignment block, falling back to line parsing: %s", exc)
        return None


def parse_lines(text: str) -> List[TaskAssignment]:
    assignments: List[TaskAssignment] = []
    agent_id: Optional[str] = None
    body: List[str] = []

    def flush() -> None:
        task = "\n".join(body)
        if agent_id is not None and task:
            assignments.append(TaskAssignment(agent_id=agent_id, task=task))

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        header = HEADER_LINE.match(line)
        if header:
            flush()
            agent_id = header.group("agent")
            first = header.group("task").strip()
            body = [first] if first else []
        elif agent_id is not None:
            body.append(line)
    flush()
    return assignments


def parse_task_assignments(text: str) -> List[TaskAssignment]:
    if not text:
        return []
    structured = parse_structured(text)
    if structured is not None:
        return structured
    # Keep a malformed block's body for the line scan, drop its markers.
    return parse_lines(ASSIGNMENT_BLOCK.sub(lambda match: match.group("body"), text))


def assignments_from_output(output: AgentOutput) -> List[TaskAssignment]:
    """Prefer a ``task_assignment`` action the agent already extracted, then its text.

    Action blocks are stripped from ``response``, so a block whose body is not
    JSON is line-parsed from the payload text itself.
    """
    for action in output.actions:
        if action.type != ActionType.TASK_ASSIGNMENT.value:
            continue
        if isinstance(action.payload, str):
            assignments = parse_lines(action.payload)
            if assignments:
                return assignments
            continue
        try:
            return _from_records(action.payload)
        except AssignmentFormatError as exc:
            logger.warning("Ignoring malformed task_assignment action: %s", exc)
    return parse_task_assignments(output.response)
