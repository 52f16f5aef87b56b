"""Tests for priority dispatch, retries and timeouts in the agent queue."""
from __future__ import annotations

import asyncio
import re
import time

import pytest

from care_agents.core.models import (
    AgentDefinition,
    AgentEventType,
    AgentInvocation,
    AgentState,
    InvocationPriority,
)
from fakes import make_queue, processor_of


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def echo_definition(**overrides) -> AgentDefinition:
    values = dict(
        agent_id="echo",
        name="Echo",
        agent_type="echo",
        timeout_ms=100,
        retry_attempts=0,
        config={"delay": 0.01},
    )
    values.update(overrides)
    return AgentDefinition(**values)


async def wait_for_pending(queue, count: int) -> None:
    while queue.pending_count < count:
        await asyncio.sleep(0)


@pytest.mark.anyio
async def test_echo_invocation_succeeds() -> None:
    async with make_queue(echo_definition()) as queue:
        response = await asyncio.wait_for(
            queue.invoke(AgentInvocation(agent_id="echo", input="hi")), timeout=1
        )

    assert response.agent_id == "echo"
    assert response.success is True
    assert response.result == "hi"
    assert response.error is None
    assert response.attempts == 1
    assert response.processing_time_ms < 1000


@pytest.mark.anyio
async def test_slow_agent_times_out_after_each_attempt() -> None:
    definition = AgentDefinition(
        agent_id="slow",
        name="Slow",
        agent_type="echo",
        timeout_ms=50,
        retry_attempts=1,
        config={"delay": 0.2},
    )
    async with make_queue(definition) as queue:
        response = await queue.invoke(AgentInvocation(agent_id="slow", input="hi"))
        processor = processor_of(queue, "slow")

    assert response.success is False
    assert "timeout" in response.error.lower()
    assert response.attempts == 2
    assert processor.calls == 2


@pytest.mark.anyio
async def test_urgent_invocations_fill_the_first_batch() -> None:
    log: list = []
    queue = make_queue(
        AgentDefinition(
            agent_id="recorder",
            name="Recorder",
            agent_type="recording",
            timeout_ms=1000,
            config={"log": log},
        )
    )
    priorities = ["low", "low", "low", "urgent", "urgent", "urgent"]
    tasks = [
        asyncio.create_task(
            queue.invoke(AgentInvocation(agent_id="recorder", input=f"{p}-{i}", priority=p))
        )
        for i, p in enumerate(priorities)
    ]
    await wait_for_pending(queue, 6)

    assert await queue.dispatch_batch() == 5
    assert log[:3] == ["urgent-3", "urgent-4", "urgent-5"]
    assert log[3:] == ["low-0", "low-1"]
    assert queue.pending_count == 1

    assert await queue.dispatch_batch() == 1
    assert log[-1] == "low-2"
    responses = await asyncio.gather(*tasks)
    assert all(r.success for r in responses)


@pytest.mark.anyio
async def test_priority_sort_keeps_arrival_order_within_a_rank() -> None:
    log: list = []
    queue = make_queue(
        AgentDefinition(
            agent_id="recorder",
            name="Recorder",
            agent_type="recording",
            timeout_ms=1000,
            config={"log": log},
        ),
        batch_size=10,
    )
    submitted = [("normal", "a"), ("high", "b"), ("normal", "c"), ("urgent", "d"), ("high", "e")]
    tasks = [
        asyncio.create_task(
            queue.invoke(AgentInvocation(agent_id="recorder", input=name, priority=priority))
        )
        for priority, name in submitted
    ]
    await wait_for_pending(queue, len(submitted))
    await queue.dispatch_batch()
    await asyncio.gather(*tasks)

    assert log == ["d", "b", "e", "a", "c"]


@pytest.mark.anyio
async def test_disabled_agent_is_rejected_without_processing() -> None:
    queue = make_queue(echo_definition())
    queue.set_agent_enabled("echo", False)

    response = await queue.invoke(AgentInvocation(agent_id="echo", input="hi"))

    assert response.success is False
    assert "agent not enabled" in response.error.lower()
    assert response.attempts == 0
    assert processor_of(queue, "echo").calls == 0
    assert queue.pending_count == 0


@pytest.mark.anyio
async def test_unknown_agent_is_rejected() -> None:
    queue = make_queue(echo_definition())

    response = await queue.invoke(AgentInvocation(agent_id="missing"))

    assert response.success is False
    assert response.error == "Agent not found: missing"


@pytest.mark.anyio
async def test_agent_disabled_while_queued_is_not_processed() -> None:
    queue = make_queue(echo_definition())
    task = asyncio.create_task(queue.invoke(AgentInvocation(agent_id="echo", input="hi")))
    await wait_for_pending(queue, 1)

    queue.set_agent_enabled("echo", False)
    await queue.dispatch_batch()
    response = await task

    assert response.success is False
    assert "not enabled" in response.error
    assert processor_of(queue, "echo").calls == 0


@pytest.mark.anyio
async def test_permanent_failure_is_attempted_retry_attempts_plus_one_times() -> None:
    definition = AgentDefinition(
        agent_id="broken",
        name="Broken",
        agent_type="failing",
        timeout_ms=100,
        retry_attempts=3,
    )
    async with make_queue(definition, retry_base_delay=0.001) as queue:
        response = await queue.invoke(AgentInvocation(agent_id="broken"))

    assert response.success is False
    assert response.error == "adapter unavailable"
    assert response.attempts == 4
    assert processor_of(queue, "broken").calls == 4


@pytest.mark.anyio
async def test_hanging_agent_fails_within_timeout_and_is_cancelled() -> None:
    definition = AgentDefinition(
        agent_id="hang",
        name="Hang",
        agent_type="hanging",
        timeout_ms=50,
        retry_attempts=0,
    )
    async with make_queue(definition) as queue:
        started = time.perf_counter()
        response = await queue.invoke(AgentInvocation(agent_id="hang"))
        elapsed = time.perf_counter() - started

    assert response.success is False
    assert "timeout" in response.error.lower()
    assert elapsed < 0.05 + 0.25
    assert processor_of(queue, "hang").cancelled == 1


@pytest.mark.anyio
async def test_invocation_timeout_override_wins_over_definition() -> None:
    async with make_queue(echo_definition(timeout_ms=1000, config={"delay": 0.1})) as queue:
        response = await queue.invoke(AgentInvocation(agent_id="echo", input="x", timeout_ms=20))

    assert response.success is False
    assert "after 20ms" in response.error


@pytest.mark.anyio
async def test_concurrent_failure_does_not_leak_into_sibling() -> None:
    failing = AgentDefinition(
        agent_id="broken", name="Broken", agent_type="failing", timeout_ms=100
    )
    async with make_queue(echo_definition(), failing) as queue:
        ok, bad = await asyncio.gather(
            queue.invoke(AgentInvocation(agent_id="echo", input="fine", correlation_id="c-ok")),
            queue.invoke(AgentInvocation(agent_id="broken", input="x", correlation_id="c-bad")),
        )

    assert (ok.agent_id, ok.success, ok.result, ok.correlation_id) == ("echo", True, "fine", "c-ok")
    assert (bad.agent_id, bad.success, bad.correlation_id) == ("broken", False, "c-bad")
    assert bad.result is None


@pytest.mark.anyio
async def test_lifecycle_events_are_emitted_in_order() -> None:
    queue = make_queue(echo_definition(), AgentDefinition(
        agent_id="broken", name="Broken", agent_type="failing", timeout_ms=100
    ))
    seen = []
    queue.on("*", seen.append)

    async with queue:
        await queue.invoke(AgentInvocation(agent_id="echo", input="hi"))
        await queue.invoke(AgentInvocation(agent_id="broken"))

    assert [(e.type, e.agent_id) for e in seen] == [
        (AgentEventType.INVOKED, "echo"),
        (AgentEventType.COMPLETED, "echo"),
        (AgentEventType.INVOKED, "broken"),
        (AgentEventType.ERROR, "broken"),
    ]
    assert seen[0].correlation_id == seen[1].correlation_id
    assert seen[1].data["response"].result == "hi"
    assert seen[3].data["error"] == "adapter unavailable"


@pytest.mark.anyio
async def test_generated_correlation_id_format() -> None:
    async with make_queue(echo_definition()) as queue:
        response = await queue.invoke(AgentInvocation(agent_id="echo", input="hi"))

    assert re.fullmatch(r"agent_\d+_[a-z0-9]{6}", response.correlation_id)


@pytest.mark.anyio
async def test_status_tracks_activity() -> None:
    slow = echo_definition(agent_id="slow", timeout_ms=1000, config={"delay": 0.2})
    broken = AgentDefinition(agent_id="broken", name="Broken", agent_type="failing", timeout_ms=100)
    async with make_queue(slow, broken) as queue:
        assert queue.get_agent_status("slow").status is AgentState.IDLE

        task = asyncio.create_task(queue.invoke(AgentInvocation(agent_id="slow", input=1)))
        while processor_of(queue, "slow").calls == 0:
            await asyncio.sleep(0.005)
        assert queue.get_agent_status("slow").status is AgentState.BUSY
        await task

        await queue.invoke(AgentInvocation(agent_id="broken"))

    slow_status = queue.get_agent_status("slow")
    assert slow_status.status is AgentState.IDLE
    assert slow_status.processed_count == 1
    assert slow_status.average_processing_time_ms > 0
    assert slow_status.last_activity is not None

    broken_status = queue.get_agent_status("broken")
    assert broken_status.status is AgentState.ERROR
    assert broken_status.error_count == 1

    queue.set_agent_enabled("broken", False)
    assert queue.get_agent_status("broken").status is AgentState.DISABLED
    assert queue.get_agent_status("missing") is None
    assert {s.agent_id for s in queue.get_all_agent_statuses()} == {"slow", "broken"}


@pytest.mark.anyio
async def test_stop_fails_invocations_still_queued() -> None:
    queue = make_queue(echo_definition(), tick_interval=60)
    await queue.start()
    task = asyncio.create_task(queue.invoke(AgentInvocation(agent_id="echo", input="hi")))
    await wait_for_pending(queue, 1)

    await queue.stop()
    response = await task

    assert response.success is False
    assert response.error == "Agent queue stopped"
    assert queue.pending_count == 0
    assert not queue.is_running


@pytest.mark.anyio
async def test_invoke_after_stop_fails_until_restarted() -> None:
    queue = make_queue(echo_definition())
    await queue.start()
    await queue.stop()

    response = await asyncio.wait_for(
        queue.invoke(AgentInvocation(agent_id="echo", input="late")), timeout=1
    )

    assert response.success is False
    assert response.error == "Agent queue stopped"
    assert response.attempts == 0
    assert queue.pending_count == 0
    assert processor_of(queue, "echo").calls == 0

    async with queue:
        restarted = await asyncio.wait_for(
            queue.invoke(AgentInvocation(agent_id="echo", input="again")), timeout=1
        )
    assert restarted.result == "again"


@pytest.mark.anyio
async def test_dispatch_batch_is_single_flight() -> None:
    queue = make_queue(echo_definition(timeout_ms=1000, config={"delay": 0.05}))
    tasks = [
        asyncio.create_task(queue.invoke(AgentInvocation(agent_id="echo", input=i)))
        for i in range(2)
    ]
    await wait_for_pending(queue, 2)

    first = asyncio.create_task(queue.dispatch_batch())
    await asyncio.sleep(0.01)
    assert queue.is_processing
    assert await queue.dispatch_batch() == 0

    assert await first == 2
    assert not queue.is_processing
    await asyncio.gather(*tasks)


def test_priority_labels_are_coerced() -> None:
    invocation = AgentInvocation(agent_id="echo", priority="urgent")

    assert invocation.priority is InvocationPriority.URGENT
    assert invocation.priority.rank == 0
    with pytest.raises(ValueError):
        AgentInvocation(agent_id="echo", priority="asap")


@pytest.mark.anyio
async def test_agents_can_be_registered_on_a_running_queue() -> None:
    async with make_queue() as queue:
        queue.register_agent(echo_definition(agent_id="late", capabilities=["echo"]))
        response = await queue.invoke(AgentInvocation(agent_id="late", input=3))

    assert response.result == 3
    assert queue.get_agent_capabilities("late") == ["echo"]


@pytest.mark.parametrize("timeout_ms", [0, -5])
def test_non_positive_timeout_override_is_rejected(timeout_ms: int) -> None:
    with pytest.raises(ValueError, match="timeout_ms"):
        AgentInvocation(agent_id="echo", timeout_ms=timeout_ms)


@pytest.mark.anyio
async def test_small_timeout_override_is_not_replaced_by_definition() -> None:
    async with make_queue(echo_definition(timeout_ms=5000, config={"delay": 0.2})) as queue:
        response = await queue.invoke(AgentInvocation(agent_id="echo", input="x", timeout_ms=1))

    assert response.success is False
    assert "after 1ms" in response.error
