"""Sequential, parallel and hierarchical collaboration rounds."""
from __future__ import annotations

import asyncio

import pytest

from conftest import make_agent
from devcrew.core import metadata as meta
from devcrew.core.errors import (
    ConfigurationError,
    ParticipantError,
    RoundTimeoutError,
    SessionBusyError,
    UnknownWorkerError,
)
from devcrew.core.models import AgentInput, AgentRole
from devcrew.orchestration.collaboration import CollaborationOrchestrator, FailurePolicy


@pytest.mark.anyio
async def test_sequential_passes_output_and_neighbour_ids() -> None:
    a = make_agent("a", replies=lambda prompt: "from a")
    b = make_agent("b", replies=lambda prompt: "from b")
    c = make_agent("c", replies=lambda prompt: "from c")
    orchestrator = CollaborationOrchestrator()

    output = await orchestrator.run("s1", "sequential", [a, b, c], AgentInput(prompt="start"))

    assert output.response == "from c"
    hops = [a.inputs[0], b.inputs[0], c.inputs[0]]
    assert [hop.prompt for hop in hops] == ["start", "from a", "from b"]
    assert [hop.metadata[meta.PREVIOUS_AGENT_ID] for hop in hops] == [None, "a", "b"]
    assert [hop.metadata[meta.NEXT_AGENT_ID] for hop in hops] == ["b", "c", None]
    for hop in hops:
        assert hop.metadata[meta.SESSION_ID] == "s1"
        assert hop.metadata[meta.COLLABORATION_TYPE] == "sequential"


@pytest.mark.anyio
async def test_parallel_aggregates_in_participant_order() -> None:
    slow = make_agent("slow", AgentRole.ARCHITECT, replies=["design"], latency=0.05)
    fast = make_agent("fast", AgentRole.TESTER, replies=["tests"], latency=0.0)
    orchestrator = CollaborationOrchestrator()

    output = await orchestrator.run("p1", "parallel", [slow, fast], AgentInput(prompt="review"))

    assert output.response == "Slow (architect): design\n\nFast (tester): tests"
    assert output.metadata[meta.INITIATOR_ID] == "slow"
    assert fast.inputs[0].context.startswith("Slow (architect) started this parallel round")
    assert slow.inputs[0].context is None


@pytest.mark.anyio
async def test_parallel_abort_cancels_siblings() -> None:
    failing = make_agent("failing", replies=[RuntimeError("boom")])
    sleeper = make_agent("sleeper", latency=5.0)
    orchestrator = CollaborationOrchestrator()

    with pytest.raises(ParticipantError) as excinfo:
        await orchestrator.run("p2", "parallel", [failing, sleeper], AgentInput(prompt="go"))

    assert excinfo.value.agent_id == "failing"
    assert "p2" not in orchestrator.sessions
    assert sleeper.descriptor.task_count == 0


@pytest.mark.anyio
async def test_parallel_partial_policy_reports_failures() -> None:
    ok = make_agent("ok", replies=["fine"])
    bad = make_agent("bad", replies=[RuntimeError("boom")])
    orchestrator = CollaborationOrchestrator(failure_policy=FailurePolicy.PARTIAL)

    output = await orchestrator.run("p3", "parallel", [ok, bad], AgentInput(prompt="go"))

    assert output.response.startswith("Ok (custom): fine\n\nBad (custom): ERROR: ")
    assert [failure["agent_id"] for failure in output.metadata[meta.FAILURES]] == ["bad"]


@pytest.mark.anyio
async def test_partial_policy_raises_when_everyone_fails() -> None:
    first = make_agent("first", replies=[RuntimeError("one")])
    second = make_agent("second", replies=[RuntimeError("two")])
    orchestrator = CollaborationOrchestrator(failure_policy="partial")

    with pytest.raises(ParticipantError):
        await orchestrator.run("p4", "parallel", [first, second], AgentInput(prompt="go"))


@pytest.mark.anyio
async def test_hierarchical_dispatches_and_integrates() -> None:
    plan = "w1: build the api\nw2: write the tests"
    lead = make_agent("lead", replies=[plan, "integrated"])
    w1 = make_agent("w1", replies=["api built"])
    w2 = make_agent("w2", replies=["tests written"])
    orchestrator = CollaborationOrchestrator()

    output = await orchestrator.run("h1", "hierarchical", [lead, w1, w2], AgentInput(prompt="ship it"))

    assert output.response == "integrated"
    assert w1.inputs[0].prompt == "build the api"
    assert w1.inputs[0].metadata[meta.IS_COORDINATOR] is False
    assert w1.inputs[0].metadata[meta.COORDINATOR_AGENT_ID] == "lead"
    integration = lead.inputs[1]
    assert integration.metadata[meta.IS_INTEGRATION] is True
    assert integration.metadata[meta.WORKER_RESULTS] == [
        {"agent_id": "w1", "output": "api built"},
        {"agent_id": "w2", "output": "tests written"},
    ]
    assert "Output of W1" in lead.prompts[1]


@pytest.mark.anyio
async def test_hierarchical_unknown_worker_fails_before_dispatch() -> None:
    lead = make_agent("lead", replies=["w1: build\nghost: haunt"])
    w1 = make_agent("w1")
    orchestrator = CollaborationOrchestrator()

    with pytest.raises(UnknownWorkerError) as excinfo:
        await orchestrator.run("h2", "hierarchical", [lead, w1], AgentInput(prompt="go"))

    assert excinfo.value.agent_id == "ghost"
    assert w1.inputs == []
    assert len(lead.inputs) == 1
    assert "h2" not in orchestrator.sessions


@pytest.mark.anyio
async def test_hierarchical_coordinator_cannot_assign_itself() -> None:
    lead = make_agent("lead", replies=["lead: do it all"])
    orchestrator = CollaborationOrchestrator()

    with pytest.raises(UnknownWorkerError):
        await orchestrator.run("h3", "hierarchical", [lead, make_agent("w1")], AgentInput(prompt="go"))


@pytest.mark.anyio
async def test_hierarchical_without_assignments_goes_to_integration() -> None:
    lead = make_agent("lead", replies=["nothing to split", "answered directly"])
    orchestrator = CollaborationOrchestrator()

    output = await orchestrator.run("h4", "hierarchical", [lead], AgentInput(prompt="tiny"))

    assert output.response == "answered directly"
    assert lead.inputs[1].metadata[meta.WORKER_RESULTS] == []


@pytest.mark.anyio
async def test_hierarchical_text_assignment_block_reaches_workers() -> None:
    lead = make_agent("lead", replies=["[ACTION:task_assignment]\nw1: build it\n[/ACTION]", "integrated"])
    w1 = make_agent("w1", replies=["built"])
    orchestrator = CollaborationOrchestrator()

    output = await orchestrator.run("h5", "hierarchical", [lead, w1], AgentInput(prompt="go"))

    assert output.response == "integrated"
    assert [item.prompt for item in w1.inputs] == ["build it"]
    assert lead.inputs[1].metadata[meta.WORKER_RESULTS] == [{"agent_id": "w1", "output": "built"}]


@pytest.mark.anyio
async def test_busy_session_is_rejected() -> None:
    slow = make_agent("slow", latency=0.05)
    other = make_agent("other")
    orchestrator = CollaborationOrchestrator()

    first = asyncio.create_task(orchestrator.run("same", "sequential", [slow], AgentInput(prompt="a")))
    await asyncio.sleep(0.01)
    with pytest.raises(SessionBusyError):
        await orchestrator.run("same", "sequential", [other], AgentInput(prompt="b"))

    await first
    assert "same" not in orchestrator.sessions
    assert other.inputs == []


@pytest.mark.anyio
async def test_invalid_requests_raise_configuration_error() -> None:
    orchestrator = CollaborationOrchestrator()
    agent = make_agent("a")

    with pytest.raises(ConfigurationError):
        await orchestrator.run("", "sequential", [agent], AgentInput(prompt="x"))
    with pytest.raises(ConfigurationError):
        await orchestrator.run("s", "sequential", [], AgentInput(prompt="x"))
    with pytest.raises(ConfigurationError):
        await orchestrator.run("s", "round-robin", [agent], AgentInput(prompt="x"))
    assert agent.inputs == []


@pytest.mark.anyio
async def test_round_timeout() -> None:
    orchestrator = CollaborationOrchestrator(round_timeout=0.01)

    with pytest.raises(RoundTimeoutError):
        await orchestrator.run("t1", "sequential", [make_agent("slow", latency=1.0)], AgentInput(prompt="x"))
    assert len(orchestrator.sessions) == 0


@pytest.mark.anyio
async def test_events_are_published() -> None:
    orchestrator = CollaborationOrchestrator()
    a, b = make_agent("a"), make_agent("b")

    async with orchestrator.bus.subscribe() as events:
        await orchestrator.run("e1", "sequential", [a, b], AgentInput(prompt="x"))
        kinds = []
        while not events.empty():
            kinds.append(events.get_nowait())

    assert [event.kind for event in kinds] == ["session_started", "message", "session_ended"]
    assert kinds[1].sender_id == "a" and kinds[1].recipient_id == "b"
    assert kinds[-1].payload == {"status": "completed"}
