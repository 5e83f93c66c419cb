"""
Task scheduling for Agent Flow.

This module pairs queued tasks with agents and drives their execution:

- TaskQueue orders queued tasks by (priority, creation sequence).
- AgentSelector scores eligible agents for a task.
- Scheduler runs scheduling passes, dispatches tasks and records outcomes.

All registry and task-store mutation happens in synchronous sections of the
scheduler on a single event loop, so no locks are taken.
"""

import asyncio
import heapq
from functools import partial
from typing import Any, Dict, List, Optional, Tuple

from ..models.core import OrchestratorMetrics, TaskRecord
from ..models.errors import TaskExecutionError, TaskTimeoutError
from ..models.events import EventType
from ..utils.config import OrchestrationConfig
from ..utils.logging import get_logger
from .events import EventBus
from .registry import AgentInstance, AgentRegistry
from .tasks import TaskStore

ROLE_MATCH_WEIGHT = 100.0
CAPABILITY_WEIGHT = 20.0
LOAD_PENALTY = 10.0
# Penalty per millisecond of mean latency, i.e. one point per second
LATENCY_PENALTY = 1.0 / 1000.0


class TaskQueue:
    """Priority queue of task ids. Lower priority value is served first."""

    def __init__(self):
        self._heap: List[Tuple[int, int, str]] = []

    def push(self, record: TaskRecord) -> None:
        # The (priority, sequence) key is stable, so re-pushing a popped task
        # puts it back at the front.
        heapq.heappush(self._heap, (record.priority, record.sequence, record.id))

    def pop(self) -> str:
        return heapq.heappop(self._heap)[2]

    def remove(self, task_id: str) -> bool:
        for index, entry in enumerate(self._heap):
            if entry[2] == task_id:
                self._heap.pop(index)
                heapq.heapify(self._heap)
                return True
        return False

    def ordered_ids(self) -> List[str]:
        return [entry[2] for entry in sorted(self._heap)]

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)


class AgentSelector:
    """Selects the best agent for a task."""

    def score(self, task: TaskRecord, agent: AgentInstance) -> Optional[float]:
        """
        Score an agent for a task.

        Returns:
            Optional[float]: Higher is better; None if the agent is ineligible
        """
        if not agent.has_capacity():
            return None

        score = 0.0

        # Role is a hard constraint, never a penalty
        if task.required_role is not None:
            if agent.role != task.required_role:
                return None
            score += ROLE_MATCH_WEIGHT

        overlap = sum(1 for c in task.required_capabilities if c in agent.capabilities)
        score += overlap * CAPABILITY_WEIGHT

        score -= agent.active_tasks * LOAD_PENALTY
        score -= agent.average_latency_ms * LATENCY_PENALTY

        return score

    def select(self, task: TaskRecord, agents: List[AgentInstance]) -> Optional[AgentInstance]:
        """
        Select the highest scoring eligible agent.

        Ties go to the agent registered first.
        """
        best: Optional[AgentInstance] = None
        best_score = float("-inf")

        for agent in agents:
            score = self.score(task, agent)
            if score is None:
                continue
            if score > best_score:
                best_score = score
                best = agent

        return best


class Scheduler:
    """Matches queued tasks to agents and drives task execution."""

    def __init__(
        self,
        registry: AgentRegistry,
        store: TaskStore,
        events: EventBus,
        metrics: OrchestratorMetrics,
        config: OrchestrationConfig
    ):
        self.registry = registry
        self.store = store
        self.events = events
        self.metrics = metrics
        self.config = config
        self.queue = TaskQueue()
        self.selector = AgentSelector()
        self.logger = get_logger(f"{__name__}.Scheduler")
        self._running: Dict[str, asyncio.Task] = {}
        self._closed = False

    def enqueue(self, task_id: str) -> None:
        """Queue a pending task and run a scheduling pass."""
        record = self.store.mark_queued(task_id)
        self.queue.push(record)
        self.schedule()

    def dequeue(self, task_id: str) -> bool:
        return self.queue.remove(task_id)

    def schedule(self) -> int:
        """
        Assign queued tasks to agents until the queue is empty or the head
        task has no eligible agent.

        Returns:
            int: Number of tasks dispatched in this pass
        """
        if self._closed:
            return 0

        dispatched = 0
        deferred: List[TaskRecord] = []

        while self.queue:
            record = self.store.require(self.queue.pop())
            agent = self.selector.select(record, self.registry.list_agents())

            if agent is None:
                if self.config.skip_blocked_tasks:
                    deferred.append(record)
                    continue
                self.queue.push(record)
                self.logger.debug(f"No eligible agent for task {record.id}; queue blocked")
                break

            self._dispatch(record, agent)
            dispatched += 1

        for record in deferred:
            self.queue.push(record)

        return dispatched

    def _dispatch(self, record: TaskRecord, agent: AgentInstance) -> None:
        """Bind a task to an agent and start executing it."""
        self.store.mark_assigned(record.id, agent.id)
        agent.start_execution()
        self.update_utilisation()

        self.logger.info(f"Assigned task {record.id} to agent {agent.id}")
        self.events.emit(EventType.TASK_ASSIGNED, task_id=record.id, agent_id=agent.id,
                         workflow_id=record.workflow_id)

        runner = asyncio.get_running_loop().create_task(self._run(record.id, agent))
        self._running[record.id] = runner
        runner.add_done_callback(partial(self._on_runner_done, record.id, agent))

    async def _run(self, task_id: str, agent: AgentInstance) -> None:
        """Execute a single task with timeout and error handling."""
        record = self.store.mark_in_progress(task_id)
        self.events.emit(EventType.TASK_STARTED, task_id=task_id, agent_id=agent.id,
                         workflow_id=record.workflow_id)

        try:
            result = await self._execute(record, agent)

        except asyncio.CancelledError:
            self._record_cancelled(task_id, agent)
            raise

        except TaskTimeoutError as e:
            self._record_failure(record, agent, e)

        except Exception as e:
            error = TaskExecutionError(
                str(e) or type(e).__name__,
                task_id=task_id,
                agent_id=agent.id,
                cause_type=type(e).__name__,
            )
            error.__cause__ = e
            self._record_failure(record, agent, error)

        else:
            self._record_success(record, agent, result)

        finally:
            self._release(task_id, agent)

    async def _execute(self, record: TaskRecord, agent: AgentInstance) -> Any:
        """
        Race the agent's execute function against the task timeout.

        A timeout stops waiting; it does not stop the agent unless
        ``cancel_on_timeout`` is set. A result that arrives after the timeout
        is discarded.
        """
        timeout = self.config.task_timeout_seconds
        execution = asyncio.get_running_loop().create_task(agent.invoke(record.to_view()))

        try:
            done, _ = await asyncio.wait({execution}, timeout=timeout)
        except asyncio.CancelledError:
            execution.cancel()
            raise

        if execution not in done:
            if self.config.cancel_on_timeout:
                execution.cancel()
            else:
                execution.add_done_callback(partial(self._discard_late_settlement, record.id))
            raise TaskTimeoutError(record.id, timeout, agent_id=agent.id)

        return execution.result()

    def _discard_late_settlement(self, task_id: str, execution: "asyncio.Task") -> None:
        if execution.cancelled():
            return
        error = execution.exception()
        outcome = f"error {error!r}" if error is not None else "result"
        self.logger.debug(f"Discarding late {outcome} for timed out task {task_id}")

    def _record_success(self, record: TaskRecord, agent: AgentInstance, result: Any) -> None:
        if not self.store.complete(record.id, result):
            return

        latency_ms = record.latency_ms() or 0.0
        agent.record_success(latency_ms)
        self.metrics.tasks_completed += 1
        self.metrics.total_latency_ms += latency_ms

        self.logger.info(f"Task {record.id} completed in {latency_ms:.1f}ms")
        self.events.emit(EventType.TASK_COMPLETED, task_id=record.id, agent_id=agent.id,
                         workflow_id=record.workflow_id, details={"latency_ms": latency_ms})

    def _record_failure(self, record: TaskRecord, agent: AgentInstance, error: BaseException) -> None:
        if not self.store.fail(record.id, error):
            return

        agent.record_failure()
        self.metrics.tasks_failed += 1

        self.logger.warning(f"Task {record.id} failed: {error}")
        self.events.emit(EventType.TASK_FAILED, task_id=record.id, agent_id=agent.id,
                         workflow_id=record.workflow_id,
                         details={"error": str(error), "error_type": type(error).__name__})

    def _record_cancelled(self, task_id: str, agent: Optional[AgentInstance]) -> bool:
        if not self.store.cancel(task_id):
            return False

        record = self.store.require(task_id)
        self.metrics.tasks_cancelled += 1
        self.logger.info(f"Task {task_id} cancelled")
        self.events.emit(EventType.TASK_CANCELLED, task_id=task_id,
                         agent_id=agent.id if agent is not None else None,
                         workflow_id=record.workflow_id)
        return True

    def cancel(self, task_id: str) -> bool:
        """
        Cancel a pre-terminal task.

        Queued tasks leave the queue; running tasks have their execution
        cancelled.

        Returns:
            bool: False if the task was already terminal
        """
        record = self.store.require(task_id)
        agent = self.registry.get(record.assigned_agent) if record.assigned_agent else None

        self.queue.remove(task_id)
        if not self._record_cancelled(task_id, agent):
            return False

        runner = self._running.get(task_id)
        if runner is not None:
            runner.cancel()
        return True

    def _release(self, task_id: str, agent: AgentInstance) -> None:
        """Return the agent's capacity and reschedule. Safe to call twice."""
        if self._running.pop(task_id, None) is None:
            return
        agent.end_execution()
        self.update_utilisation()
        self.schedule()

    def _on_runner_done(self, task_id: str, agent: AgentInstance, runner: "asyncio.Task") -> None:
        # A runner cancelled before its first step never reaches its finally block
        if task_id in self._running:
            self._record_cancelled(task_id, agent)
            self._release(task_id, agent)

    def update_utilisation(self) -> None:
        self.metrics.agent_utilisation = self.registry.active_count / max(1, len(self.registry))

    @property
    def running_count(self) -> int:
        return len(self._running)

    async def close(self) -> None:
        """Stop scheduling and cancel every in-flight execution."""
        self._closed = True
        runners = list(self._running.values())
        for runner in runners:
            runner.cancel()
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)
