"""Task-assignment parsing from coordinator output."""
from __future__ import annotations

from devcrew.core.models import Action, AgentOutput, TaskAssignment
from devcrew.orchestration.parser import assignments_from_output, parse_task_assignments


def test_line_format_appends_continuation_lines() -> None:
    text = "alice: fix bug\nmore detail\nbob: write docs"

    assert parse_task_assignments(text) == [
        TaskAssignment(agent_id="alice", task="fix bug\nmore detail"),
        TaskAssignment(agent_id="bob", task="write docs"),
    ]


def test_structured_block_wins_over_lines() -> None:
    text = (
        "Plan below.\n"
        "carol: ignored\n"
        "[ACTION:task_assignment]\n"
        '[{"assignedTo": "dev-1", "description": "build api"},'
        ' {"assignedTo": "qa-1", "description": "test api"}]\n'
        "[/ACTION]"
    )

    assert parse_task_assignments(text) == [
        TaskAssignment(agent_id="dev-1", task="build api"),
        TaskAssignment(agent_id="qa-1", task="test api"),
    ]


def test_malformed_block_falls_back_to_lines() -> None:
    text = "[action:TASK_ASSIGNMENT]{not json[/ACTION]\ndev-1: build api"

    assert parse_task_assignments(text) == [TaskAssignment(agent_id="dev-1", task="build api")]


def test_empty_and_blank_input() -> None:
    assert parse_task_assignments("") == []
    assert parse_task_assignments("\n   \n") == []
    assert parse_task_assignments("just some prose without headers") == []


def test_blank_lines_are_skipped_and_empty_tasks_dropped() -> None:
    text = "alice:\n\nbob:   \n   write the docs\n\n"

    assert parse_task_assignments(text) == [TaskAssignment(agent_id="bob", task="write the docs")]


def test_single_record_object_is_accepted() -> None:
    text = '[ACTION:task_assignment]{"assignedTo": "w1", "description": " one "}[/ACTION]'

    assert parse_task_assignments(text) == [TaskAssignment(agent_id="w1", task="one")]


def test_extracted_action_is_preferred() -> None:
    output = AgentOutput(
        response="w2: from text",
        actions=[Action(type="task_assignment", payload=[{"assignedTo": "w1", "description": "from action"}])],
    )

    assert assignments_from_output(output) == [TaskAssignment(agent_id="w1", task="from action")]


def test_malformed_action_uses_response_text() -> None:
    output = AgentOutput(
        response="w2: from text",
        actions=[Action(type="task_assignment", payload="not a list")],
    )

    assert assignments_from_output(output) == [TaskAssignment(agent_id="w2", task="from text")]


def test_multiline_malformed_block_drops_markers() -> None:
    text = "[ACTION:task_assignment]\nalice: fix bug\nbob: review it\n[/ACTION]"

    assert parse_task_assignments(text) == [
        TaskAssignment(agent_id="alice", task="fix bug"),
        TaskAssignment(agent_id="bob", task="review it"),
    ]


def test_header_requires_colon_right_after_identifier() -> None:
    assert parse_task_assignments("alice : fix bug") == []
    assert parse_task_assignments("  alice:fix bug") == [TaskAssignment(agent_id="alice", task="fix bug")]


def test_text_action_payload_is_line_parsed() -> None:
    output = AgentOutput(
        response="",
        actions=[Action(type="task_assignment", payload="w1: build it\nw2: test it")],
    )

    assert assignments_from_output(output) == [
        TaskAssignment(agent_id="w1", task="build it"),
        TaskAssignment(agent_id="w2", task="test it"),
    ]
