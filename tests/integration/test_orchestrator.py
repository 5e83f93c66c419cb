"""
Integration tests for task scheduling and execution through the orchestrator.
"""

import asyncio
import traceback

import pytest

from agent_flow.models.core import AgentRole, AgentState, TaskSpec, TaskState
from agent_flow.models.errors import (
    AgentNotFoundError, AwaitTimeoutError, InvalidTaskStateError,
    TaskCancelledError, TaskExecutionError, TaskNotFoundError,
    TaskTimeoutError, TaskValidationError
)
from agent_flow.models.events import EventType
from agent_flow.orchestration.orchestrator import AgentOrchestrator
from agent_flow.utils.config import OrchestrationConfig

from tests.conftest import echo


def _slow(delay: float):
    async def execute(task):
        await asyncio.sleep(delay)
        return {"title": task.title}
    return execute


class TestTaskExecution:
    """End-to-end task execution scenarios."""

    @pytest.mark.asyncio
    async def test_echo_task(self, orchestrator):
        """Test a single task on a matching agent."""
        orchestrator.register_agent("engineer", echo, max_concurrency=1)

        task_id = orchestrator.create_task({"title": "build-x", "required_role": "engineer"})
        record = await orchestrator.await_task(task_id)

        assert record.result == {"echo": "build-x"}
        assert record.state == TaskState.COMPLETED
        assert orchestrator.get_task(task_id).state == TaskState.COMPLETED

    @pytest.mark.asyncio
    async def test_failing_agent(self, orchestrator):
        """Test that an agent error fails the task and reaches the awaiter."""
        async def boom(task):
            raise Exception("boom")

        orchestrator.register_agent("reviewer", boom)
        task_id = orchestrator.create_task({"title": "review", "required_role": "reviewer"})

        with pytest.raises(TaskExecutionError) as exc_info:
            await orchestrator.await_task(task_id)

        assert "boom" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, Exception)
        assert str(exc_info.value.__cause__) == "boom"

        record = orchestrator.get_task(task_id)
        assert record.state == TaskState.FAILED
        assert record.error.message == "boom"
        assert record.error.error_type == "TaskExecutionError"
        assert orchestrator.get_status().metrics.tasks_failed == 1

    @pytest.mark.asyncio
    async def test_priority_one_assigned_first(self, orchestrator):
        """Test that a priority-1 task is assigned before a priority-5 task."""
        orchestrator.register_agent("engineer", _slow(0.05), max_concurrency=1)

        warmup = orchestrator.create_task({"title": "warmup"})
        low = orchestrator.create_task({"title": "low", "priority": 5})
        high = orchestrator.create_task({"title": "high", "priority": 1})

        await asyncio.gather(*(orchestrator.await_task(t) for t in (warmup, low, high)))

        assert orchestrator.get_task(high).assigned_at < orchestrator.get_task(low).assigned_at

    @pytest.mark.asyncio
    async def test_sync_execute_function(self, orchestrator):
        """Test that plain functions work as execute capabilities."""
        orchestrator.register_agent("custom-role", lambda task: task.title[::-1])

        task_id = orchestrator.create_task({"title": "abc", "required_role": "custom-role"})
        assert (await orchestrator.await_task(task_id)).result == "cba"

    @pytest.mark.asyncio
    async def test_class_based_agent(self, orchestrator, mock_agent):
        """Test registering a BaseAgent subclass."""
        agent_id = orchestrator.register(mock_agent)

        task_id = orchestrator.create_task(TaskSpec(title="build", input={"x": 1}))
        record = await orchestrator.await_task(task_id)

        assert record.assigned_agent == agent_id
        assert record.result == {"agent": "test_agent", "title": "build"}
        assert mock_agent.executions[0].input == {"x": 1}
        assert orchestrator.get_agent(agent_id).name == "test_agent"

    @pytest.mark.asyncio
    async def test_registration_unblocks_queue(self, orchestrator):
        """Test that registering an agent schedules waiting tasks."""
        task_id = orchestrator.create_task({"title": "analyse", "required_role": "analyst"})
        assert orchestrator.get_task(task_id).state == TaskState.QUEUED
        assert orchestrator.get_status().queue_length == 1

        orchestrator.register_agent(AgentRole.ANALYST, echo)

        assert (await orchestrator.await_task(task_id)).result == {"echo": "analyse"}
        assert orchestrator.get_status().queue_length == 0


class TestSchedulingProperties:
    """Ordering, concurrency and role guarantees."""

    @pytest.mark.asyncio
    async def test_assignment_follows_priority_order(self, orchestrator, events):
        """Test that queued tasks are assigned by priority, then creation order."""
        priorities = [7, 3, 9, 1, 3, 5, 1, 10]
        task_ids = [
            orchestrator.create_task({"title": f"t{i}", "priority": p})
            for i, p in enumerate(priorities)
        ]

        orchestrator.register_agent("engineer", _slow(0.005), max_concurrency=1)
        await asyncio.gather(*(orchestrator.await_task(t) for t in task_ids))

        assigned = [e.task_id for e in events if e.type == EventType.TASK_ASSIGNED]
        expected = [t for _, _, t in sorted(zip(priorities, range(len(priorities)), task_ids))]
        assert assigned == expected

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, orchestrator):
        """Test that an agent never exceeds its max concurrency."""
        running = 0
        peak = 0

        async def tracked(task):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return task.title

        agent_id = orchestrator.register_agent("engineer", tracked, max_concurrency=2)
        observed = []
        orchestrator.subscribe(
            lambda e: observed.append(orchestrator.get_agent(agent_id).active_tasks),
            event_types=[EventType.TASK_ASSIGNED, EventType.TASK_STARTED],
        )

        task_ids = [orchestrator.create_task({"title": f"t{i}"}) for i in range(8)]
        await asyncio.gather(*(orchestrator.await_task(t) for t in task_ids))

        assert peak == 2
        assert max(observed) <= 2
        assert orchestrator.get_agent(agent_id).total_tasks == 8

    @pytest.mark.asyncio
    async def test_role_never_violated(self, orchestrator):
        """Test that role-constrained tasks only reach matching agents."""
        engineer = orchestrator.register_agent("engineer", echo, max_concurrency=5,
                                               capabilities=["review", "qa"])
        reviewer = orchestrator.register_agent("reviewer", _slow(0.01))

        review_ids = [
            orchestrator.create_task({"title": f"review-{i}", "required_role": "reviewer",
                                      "required_capabilities": ["review", "qa"]})
            for i in range(3)
        ]
        build_id = orchestrator.create_task({"title": "build", "required_role": "engineer"})
        await asyncio.gather(*(orchestrator.await_task(t) for t in review_ids + [build_id]))

        assert {orchestrator.get_task(t).assigned_agent for t in review_ids} == {reviewer}
        assert orchestrator.get_task(build_id).assigned_agent == engineer

    @pytest.mark.asyncio
    async def test_blocked_head_holds_back_lower_priority(self, orchestrator):
        """Test head-of-line blocking with the default configuration."""
        orchestrator.register_agent("engineer", echo)

        blocked = orchestrator.create_task({"title": "audit", "required_role": "security", "priority": 1})
        waiting = orchestrator.create_task({"title": "build", "required_role": "engineer", "priority": 2})

        await asyncio.sleep(0.01)
        assert orchestrator.get_task(waiting).state == TaskState.QUEUED

        orchestrator.register_agent("security", echo)
        await orchestrator.await_task(blocked)
        await orchestrator.await_task(waiting)


class TestTerminalState:
    """Timeout, idempotence and cancellation."""

    @pytest.mark.asyncio
    async def test_timeout_discards_late_result(self):
        """Test that a result arriving after the timeout never overwrites the failure."""
        orchestrator = AgentOrchestrator(OrchestrationConfig(task_timeout_seconds=0.05))
        finished = asyncio.Event()

        async def late(task):
            await asyncio.sleep(0.15)
            finished.set()
            return "too late"

        agent_id = orchestrator.register_agent("engineer", late)
        task_id = orchestrator.create_task({"title": "slow"})

        with pytest.raises(TaskTimeoutError) as first:
            await orchestrator.await_task(task_id, timeout=1.0)

        await asyncio.wait_for(finished.wait(), timeout=1.0)
        await asyncio.sleep(0)

        record = orchestrator.get_task(task_id)
        assert record.state == TaskState.FAILED
        assert record.result is None

        with pytest.raises(TaskTimeoutError) as second:
            await orchestrator.await_task(task_id, timeout=1.0)
        assert second.value is first.value

        agent = orchestrator.get_agent(agent_id)
        assert agent.total_tasks == 1
        assert agent.active_tasks == 0
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_repeated_awaits_do_not_grow_traceback(self, orchestrator):
        """Test that each awaiter of a failed task sees only its own frames."""
        async def boom(task):
            raise ValueError("boom")

        orchestrator.register_agent("engineer", boom)
        task_id = orchestrator.create_task({"title": "fails"})

        depths = []
        for _ in range(20):
            with pytest.raises(TaskExecutionError) as exc_info:
                await orchestrator.await_task(task_id)
            depths.append(len(traceback.extract_tb(exc_info.value.__traceback__)))

        assert len(set(depths)) == 1
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_cancel_on_timeout(self):
        """Test cooperative cancellation of a timed-out agent coroutine."""
        orchestrator = AgentOrchestrator(OrchestrationConfig(task_timeout_seconds=0.02, cancel_on_timeout=True))
        cancelled = asyncio.Event()

        async def stubborn(task):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        orchestrator.register_agent("engineer", stubborn)
        task_id = orchestrator.create_task({"title": "slow"})

        with pytest.raises(TaskTimeoutError):
            await orchestrator.await_task(task_id, timeout=1.0)

        await asyncio.wait_for(cancelled.wait(), timeout=1.0)
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_await_timeout_leaves_task_running(self, orchestrator):
        """Test that an await timeout does not affect the task."""
        orchestrator.register_agent("engineer", _slow(0.1))
        task_id = orchestrator.create_task({"title": "slow"})

        with pytest.raises(AwaitTimeoutError):
            await orchestrator.await_task(task_id, timeout=0.01)

        assert orchestrator.get_task(task_id).state == TaskState.IN_PROGRESS
        assert (await orchestrator.await_task(task_id)).result == {"title": "slow"}

    @pytest.mark.asyncio
    async def test_cancel_queued_task(self, orchestrator, events):
        """Test cancelling a task that is still queued."""
        task_id = orchestrator.create_task({"title": "audit", "required_role": "security"})

        assert orchestrator.cancel_task(task_id) is True
        assert orchestrator.cancel_task(task_id) is False
        assert orchestrator.get_task(task_id).state == TaskState.CANCELLED
        assert orchestrator.get_status().queue_length == 0
        assert orchestrator.get_status().metrics.tasks_cancelled == 1

        with pytest.raises(TaskCancelledError):
            await orchestrator.await_task(task_id)
        assert [e.type for e in events].count(EventType.TASK_CANCELLED) == 1

    @pytest.mark.asyncio
    async def test_cancel_running_task(self, orchestrator):
        """Test cancelling a task while its agent is executing."""
        started = asyncio.Event()

        async def slow(task):
            started.set()
            await asyncio.sleep(10)

        agent_id = orchestrator.register_agent("engineer", slow)
        task_id = orchestrator.create_task({"title": "slow"})
        await started.wait()

        assert orchestrator.cancel_task(task_id) is True
        with pytest.raises(TaskCancelledError):
            await orchestrator.await_task(task_id)

        await asyncio.sleep(0.01)
        agent = orchestrator.get_agent(agent_id)
        assert agent.active_tasks == 0
        assert agent.state == AgentState.IDLE
        assert orchestrator.get_status().metrics.tasks_cancelled == 1

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, orchestrator):
        """Test cancelling an unknown task."""
        with pytest.raises(TaskNotFoundError):
            orchestrator.cancel_task("task-404-x")


class TestTaskCreation:
    """Validation and explicit submission."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("spec", [
        {"title": ""},
        {"description": "no title"},
        {"title": "t", "priority": 0},
        {"title": "t", "priority": 11},
        "not a mapping",
    ])
    async def test_invalid_spec_creates_nothing(self, orchestrator, spec):
        """Test that invalid specs are rejected before any mutation."""
        with pytest.raises(TaskValidationError):
            orchestrator.create_task(spec)

        assert orchestrator.get_status().metrics.tasks_created == 0
        assert orchestrator.list_tasks() == []

    @pytest.mark.asyncio
    async def test_manual_submission(self, orchestrator):
        """Test creating a task without submitting it."""
        orchestrator.register_agent("engineer", echo)
        task_id = orchestrator.create_task({"title": "later", "auto_submit": False})

        assert orchestrator.get_task(task_id).state == TaskState.PENDING

        orchestrator.submit_task(task_id)
        assert (await orchestrator.await_task(task_id)).result == {"echo": "later"}

        with pytest.raises(InvalidTaskStateError):
            orchestrator.submit_task(task_id)
        with pytest.raises(TaskNotFoundError):
            orchestrator.submit_task("task-404-x")

    @pytest.mark.asyncio
    async def test_await_unknown(self, orchestrator):
        """Test awaiting an unknown task."""
        with pytest.raises(TaskNotFoundError):
            await orchestrator.await_task("task-404-x")
        assert orchestrator.get_task("task-404-x") is None

    @pytest.mark.asyncio
    async def test_invalid_agent_registration(self, orchestrator):
        """Test that invalid agent registration is rejected."""
        with pytest.raises(TaskValidationError):
            orchestrator.register_agent("engineer", None)
        with pytest.raises(TaskValidationError):
            orchestrator.register_agent("", echo)
        assert orchestrator.get_status().agent_count == 0


class TestDeregistration:
    """Graceful agent removal."""

    @pytest.mark.asyncio
    async def test_deregister_waits_for_in_flight_task(self, orchestrator, events):
        """Test that deregistration completes only after the agent drains."""
        release = asyncio.Event()

        async def gated(task):
            await release.wait()
            return "done"

        agent_id = orchestrator.register_agent("engineer", gated)
        task_id = orchestrator.create_task({"title": "gated"})
        await asyncio.sleep(0)

        deregistration = asyncio.ensure_future(orchestrator.deregister_agent(agent_id))
        await asyncio.sleep(0.05)
        assert not deregistration.done()
        assert orchestrator.get_agent(agent_id).active_tasks == 1

        # Draining agents receive no new work
        queued = orchestrator.create_task({"title": "queued"})
        assert orchestrator.get_task(queued).state == TaskState.QUEUED

        release.set()
        await asyncio.wait_for(deregistration, timeout=1.0)

        assert orchestrator.get_task(task_id).state == TaskState.COMPLETED
        assert orchestrator.get_agent(agent_id) is None
        assert orchestrator.get_task(queued).state == TaskState.QUEUED

        types = [e.type for e in events]
        assert types.index(EventType.TASK_COMPLETED) < types.index(EventType.AGENT_DEREGISTERED)

        deregistered = events[types.index(EventType.AGENT_DEREGISTERED)]
        assert deregistered.agent_id == agent_id
        assert deregistered.details["role"] == "engineer"
        assert deregistered.details["name"] == agent_id

    @pytest.mark.asyncio
    async def test_deregister_unknown(self, orchestrator):
        """Test deregistering an unknown agent."""
        with pytest.raises(AgentNotFoundError):
            await orchestrator.deregister_agent("agent-404-ghost")


class TestEventsAndStatus:
    """Lifecycle events and status reporting."""

    @pytest.mark.asyncio
    async def test_task_event_sequence(self, orchestrator, events):
        """Test the events emitted over a task's life."""
        agent_id = orchestrator.register_agent("engineer", echo)
        task_id = orchestrator.create_task({"title": "build"})
        await orchestrator.await_task(task_id)

        assert [e.type for e in events] == [
            EventType.AGENT_REGISTERED,
            EventType.TASK_CREATED,
            EventType.TASK_ASSIGNED,
            EventType.TASK_STARTED,
            EventType.TASK_COMPLETED,
        ]
        assert events[0].details["role"] == "engineer"
        assert all(e.task_id == task_id for e in events[1:])
        assert events[2].agent_id == agent_id
        assert "latency_ms" in events[-1].details

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_harmless(self, orchestrator):
        """Test that a broken subscriber cannot disturb execution."""
        def broken(event):
            raise RuntimeError("observer bug")

        orchestrator.subscribe(broken)
        orchestrator.register_agent("engineer", echo)
        task_id = orchestrator.create_task({"title": "build"})

        assert (await orchestrator.await_task(task_id)).result == {"echo": "build"}

    @pytest.mark.asyncio
    async def test_orchestrators_do_not_share_events(self, orchestrator, events):
        """Test that each orchestrator has its own subscribers."""
        other = AgentOrchestrator()
        other.register_agent("engineer", echo)

        assert events == []
        await other.shutdown()

    @pytest.mark.asyncio
    async def test_status_snapshot(self, orchestrator):
        """Test the status report after some work."""
        first = orchestrator.register_agent("engineer", _slow(0.01), name="Builder",
                                            capabilities=["coding"], max_concurrency=2)
        orchestrator.register_agent("analyst", echo)

        done = [orchestrator.create_task({"title": f"t{i}", "required_role": "engineer"}) for i in range(3)]
        await asyncio.gather(*(orchestrator.await_task(t) for t in done))
        orchestrator.create_task({"title": "audit", "required_role": "security"})

        status = orchestrator.get_status()

        assert status.agent_count == 2
        assert status.active_count == 0
        assert status.queue_length == 1
        assert status.metrics.tasks_created == 4
        assert status.metrics.tasks_completed == 3
        assert status.metrics.total_latency_ms > 0

        builder = status.agents[0]
        assert builder.id == first
        assert builder.name == "Builder"
        assert builder.role == AgentRole.ENGINEER
        assert builder.state == AgentState.IDLE
        assert builder.total_tasks == 3
        assert builder.avg_latency_ms >= 5
        assert builder.capabilities == ["coding"]

    @pytest.mark.asyncio
    async def test_status_is_a_copy(self, orchestrator):
        """Test that mutating a status snapshot changes nothing."""
        status = orchestrator.get_status()
        status.metrics.tasks_created = 99

        assert orchestrator.get_status().metrics.tasks_created == 0

    @pytest.mark.asyncio
    async def test_task_snapshots_are_copies(self, orchestrator):
        """Test that mutating task snapshots leaves the stored task unchanged."""
        orchestrator.register_agent("engineer", echo)
        done = orchestrator.create_task({"title": "build", "input": {"x": 1}})
        completed = await orchestrator.await_task(done)
        queued = orchestrator.create_task({"title": "audit", "required_role": "security",
                                           "input": {"x": 1}, "required_capabilities": ["scan"]})

        snapshot = orchestrator.get_task(queued)
        snapshot.input["x"] = 99
        snapshot.required_capabilities.append("exploit")
        orchestrator.list_tasks()[1].input["y"] = 2
        completed.input["x"] = 99

        assert orchestrator.get_task(queued).input == {"x": 1}
        assert orchestrator.get_task(queued).required_capabilities == ["scan"]
        assert orchestrator.get_task(done).input == {"x": 1}
