"""
Agent Orchestration System for Agent Flow.

This module wires the registry, task store, scheduler, workflow engine and
event bus into the public orchestrator API.
"""

from collections.abc import Mapping
from typing import Any, Callable, Iterable, List, Optional, Union

from pydantic import ValidationError

from ..agents.base import BaseAgent
from ..agents.defaults import build_default_agents
from ..models.core import (
    AgentSummary, OrchestratorMetrics, OrchestratorStatus, RoleLike,
    TaskRecord, TaskSpec, WorkflowRecord, WorkflowSpec, role_name
)
from ..models.errors import TaskValidationError
from ..models.events import EventType, OrchestratorEvent
from ..utils.config import OrchestrationConfig, get_config
from ..utils.logging import get_logger
from .diagnostics import StatusReporter
from .events import EventBus
from .registry import AgentRegistry
from .scheduler import Scheduler
from .tasks import TaskStore
from .workflows import WorkflowEngine


class AgentOrchestrator:
    """
    Main orchestrator for multi-agent task execution.

    Registers agents, accepts tasks, schedules them onto agents by priority
    and fit, and runs compound workflows. Every operation that can dispatch
    work must be called from within a running asyncio event loop.
    """

    def __init__(self, config: Optional[OrchestrationConfig] = None, event_bus: Optional[EventBus] = None):
        self.config = config or OrchestrationConfig()
        self.logger = get_logger(__name__)

        # Core components
        self.events = event_bus or EventBus()
        self.metrics = OrchestratorMetrics()
        self.registry = AgentRegistry()
        self.store = TaskStore()
        self.scheduler = Scheduler(self.registry, self.store, self.events, self.metrics, self.config)
        self.workflows = WorkflowEngine(
            self.create_task, self.await_task, self.registry, self.events, self.metrics, self.config
        )
        self.reporter = StatusReporter(self.registry, self.scheduler.queue, self.metrics)

    # Agents

    def register_agent(
        self,
        role: RoleLike,
        execute: Union[Callable[..., Any], BaseAgent],
        name: Optional[str] = None,
        capabilities: Optional[List[str]] = None,
        max_concurrency: int = 1
    ) -> str:
        """
        Register an agent and run a scheduling pass.

        Args:
            role: Built-in AgentRole or a custom role name
            execute: Sync or async callable receiving a TaskView
            name: Human-readable label
            capabilities: Capability tags used for scoring
            max_concurrency: Maximum simultaneous tasks for this agent

        Returns:
            str: The new agent id
        """
        instance = self.registry.register(
            role, execute, name=name, capabilities=capabilities, max_concurrency=max_concurrency
        )
        self.events.emit(EventType.AGENT_REGISTERED, agent_id=instance.id,
                         details={"role": role_name(instance.role), "name": instance.name})
        self.scheduler.update_utilisation()
        self.scheduler.schedule()
        return instance.id

    def register(self, agent: BaseAgent) -> str:
        """Register a class-based agent using its own role, name and limits."""
        return self.register_agent(
            agent.role,
            agent,
            name=agent.name,
            capabilities=agent.capabilities,
            max_concurrency=agent.max_concurrency,
        )

    async def deregister_agent(self, agent_id: str) -> None:
        """
        Remove an agent after its in-flight tasks finish.

        Raises:
            AgentNotFoundError: If the agent is not registered
        """
        instance = await self.registry.deregister(agent_id, self.config.deregister_poll_interval_seconds)
        self.scheduler.update_utilisation()
        self.events.emit(EventType.AGENT_DEREGISTERED, agent_id=agent_id,
                         details={"role": role_name(instance.role), "name": instance.name})

    def get_agent(self, agent_id: str) -> Optional[AgentSummary]:
        instance = self.registry.get(agent_id)
        return instance.summary() if instance is not None else None

    def list_agents(self) -> List[AgentSummary]:
        return [instance.summary() for instance in self.registry.list_agents()]

    # Tasks

    def create_task(self, spec: Union[TaskSpec, Mapping]) -> str:
        """
        Create a task and, unless ``auto_submit`` is False, queue it.

        Raises:
            TaskValidationError: If the spec is invalid; nothing is created
        """
        task_spec = self._coerce_task_spec(spec)
        record = self.store.create(task_spec)
        self.metrics.tasks_created += 1

        self.logger.info(f"Created task {record.id} ({record.title}) with priority {record.priority}")
        self.events.emit(EventType.TASK_CREATED, task_id=record.id, workflow_id=record.workflow_id,
                         details={"title": record.title, "priority": record.priority})

        if task_spec.auto_submit:
            self.scheduler.enqueue(record.id)

        return record.id

    @staticmethod
    def _coerce_task_spec(spec: Union[TaskSpec, Mapping]) -> TaskSpec:
        if isinstance(spec, TaskSpec):
            return spec
        if not isinstance(spec, Mapping):
            raise TaskValidationError(f"Task spec must be a TaskSpec or mapping, got {type(spec).__name__}")
        try:
            return TaskSpec.model_validate(dict(spec))
        except ValidationError as e:
            raise TaskValidationError(f"Invalid task spec: {e}") from e

    def submit_task(self, task_id: str) -> None:
        """
        Queue a task created with ``auto_submit=False``.

        Raises:
            TaskNotFoundError: If the task does not exist
            InvalidTaskStateError: If the task is not pending
        """
        self.scheduler.enqueue(task_id)

    async def await_task(self, task_id: str, timeout: Optional[float] = None) -> TaskRecord:
        """
        Wait for a task to reach a terminal state.

        Args:
            task_id: Task to wait for
            timeout: Seconds to wait, defaults to the task timeout

        Returns:
            TaskRecord: Snapshot of the completed task

        Raises:
            TaskExecutionError: The agent raised
            TaskTimeoutError: The agent exceeded the task timeout
            TaskCancelledError: The task was cancelled
            AwaitTimeoutError: The wait itself timed out
            TaskNotFoundError: The task does not exist
        """
        if timeout is None:
            timeout = self.config.task_timeout_seconds
        return await self.store.wait(task_id, timeout)

    def get_task(self, task_id: str) -> Optional[TaskRecord]:
        return self.store.snapshot(task_id)

    def list_tasks(self, workflow_id: Optional[str] = None) -> List[TaskRecord]:
        return [self.store.snapshot(task.id) for task in self.store.list_tasks(workflow_id)]

    def cancel_task(self, task_id: str) -> bool:
        """
        Cancel a task that has not reached a terminal state.

        Returns:
            bool: False if the task had already finished
        """
        return self.scheduler.cancel(task_id)

    # Workflows

    async def execute_workflow(self, spec: Union[WorkflowSpec, Mapping]) -> Any:
        """Run a workflow and return its aggregated result."""
        return await self.workflows.execute(spec)

    def get_workflow(self, workflow_id: str) -> WorkflowRecord:
        return self.workflows.get(workflow_id)

    # Diagnostics and events

    def get_status(self) -> OrchestratorStatus:
        return self.reporter.status()

    def subscribe(
        self,
        callback: Callable[[OrchestratorEvent], None],
        event_types: Optional[Iterable[EventType]] = None
    ) -> int:
        return self.events.subscribe(callback, event_types)

    def unsubscribe(self, subscription_id: int) -> bool:
        return self.events.unsubscribe(subscription_id)

    async def shutdown(self):
        """Cancel in-flight executions and stop scheduling."""
        self.logger.info("Shutting down orchestrator")
        await self.scheduler.close()
        self.logger.info("Orchestrator shutdown complete")


def create_default_orchestrator(
    config: Optional[OrchestrationConfig] = None,
    event_bus: Optional[EventBus] = None
) -> AgentOrchestrator:
    """
    Build an orchestrator pre-populated with the default stub agents.

    Real agents can be registered alongside the stubs afterwards.
    """
    orchestrator = AgentOrchestrator(config or get_config().orchestration, event_bus)
    for agent in build_default_agents():
        orchestrator.register(agent)
    return orchestrator
