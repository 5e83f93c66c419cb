"""
Agent Registry with lifecycle and load bookkeeping for Agent Flow.

The registry exclusively owns agent records. The scheduler reads and
mutates them only through the methods defined here.
"""

import asyncio
import inspect
import itertools
from typing import Dict, List, Optional, Any, Callable
from datetime import datetime
from dataclasses import dataclass, field

from ..agents.base import BaseAgent
from ..models.core import AgentState, AgentSummary, RoleLike, TaskView, resolve_role, role_name
from ..models.errors import AgentNotFoundError, TaskValidationError
from ..utils.logging import get_logger

ExecuteFn = Callable[[TaskView], Any]


@dataclass
class AgentInstance:
    """Represents a registered agent with its load and latency counters."""
    id: str
    name: str
    role: RoleLike
    execute: ExecuteFn
    capabilities: List[str] = field(default_factory=list)
    max_concurrency: int = 1
    active_tasks: int = 0
    total_tasks: int = 0
    total_latency_ms: float = 0.0
    state: AgentState = AgentState.IDLE
    draining: bool = False
    registered_at: datetime = field(default_factory=datetime.now)
    agent: Optional[BaseAgent] = None

    def has_capacity(self) -> bool:
        """Check if agent can accept another task."""
        return not self.draining and self.active_tasks < self.max_concurrency

    @property
    def average_latency_ms(self) -> float:
        """Mean latency over all handled attempts (failures count as zero latency)."""
        if self.total_tasks == 0:
            return 0.0
        return self.total_latency_ms / self.total_tasks

    def start_execution(self):
        """Mark the start of a new execution."""
        if self.active_tasks >= self.max_concurrency:
            raise RuntimeError(f"Agent {self.id} is already at max concurrency {self.max_concurrency}")
        self.active_tasks += 1
        self.state = AgentState.BUSY

    def end_execution(self):
        """Mark the end of an execution."""
        self.active_tasks = max(0, self.active_tasks - 1)
        self.state = AgentState.BUSY if self.active_tasks > 0 else AgentState.IDLE

    def record_success(self, latency_ms: float):
        self.total_tasks += 1
        self.total_latency_ms += latency_ms

    def record_failure(self):
        # Failures count as handled attempts
        self.total_tasks += 1

    async def invoke(self, task: TaskView) -> Any:
        """Call the execute capability, awaiting it when it returns an awaitable."""
        result = self.execute(task)
        if inspect.isawaitable(result):
            result = await result
        return result

    def summary(self) -> AgentSummary:
        return AgentSummary(
            id=self.id,
            role=self.role,
            name=self.name,
            state=self.state,
            active_tasks=self.active_tasks,
            max_concurrency=self.max_concurrency,
            total_tasks=self.total_tasks,
            avg_latency_ms=round(self.average_latency_ms),
            capabilities=list(self.capabilities),
        )


class AgentRegistry:
    """
    Agent registry keeping registered agents in registration order.
    """

    def __init__(self):
        self._agents: Dict[str, AgentInstance] = {}
        self._sequence = itertools.count(1)
        self.logger = get_logger(__name__)

    def register(
        self,
        role: RoleLike,
        execute: Any,
        name: Optional[str] = None,
        capabilities: Optional[List[str]] = None,
        max_concurrency: int = 1
    ) -> AgentInstance:
        """
        Register an agent.

        Args:
            role: Built-in AgentRole or a custom role name
            execute: Callable taking a TaskView, or a BaseAgent instance
            name: Human-readable label, defaults to the agent id
            capabilities: Ordered capability tags
            max_concurrency: Maximum simultaneous tasks

        Returns:
            AgentInstance: The registered record

        Raises:
            TaskValidationError: If any argument is invalid
        """
        try:
            role = resolve_role(role)
        except ValueError as e:
            raise TaskValidationError(str(e)) from e

        agent = execute if isinstance(execute, BaseAgent) else None
        execute_fn = agent.execute if agent is not None else execute
        if not callable(execute_fn):
            raise TaskValidationError(f"Agent execute function must be callable, got {type(execute).__name__}")

        if isinstance(max_concurrency, bool) or not isinstance(max_concurrency, int) or max_concurrency < 1:
            raise TaskValidationError(f"max_concurrency must be a positive integer, got {max_concurrency!r}")

        agent_id = f"agent-{next(self._sequence)}-{role_name(role)}"

        instance = AgentInstance(
            id=agent_id,
            name=name or agent_id,
            role=role,
            execute=execute_fn,
            capabilities=list(capabilities or []),
            max_concurrency=max_concurrency,
            agent=agent,
        )
        self._agents[agent_id] = instance

        self.logger.info(f"Registered agent {agent_id} ({instance.name}) with max concurrency {max_concurrency}")
        return instance

    def get(self, agent_id: str) -> Optional[AgentInstance]:
        return self._agents.get(agent_id)

    def require(self, agent_id: str) -> AgentInstance:
        """Get an agent or raise AgentNotFoundError."""
        instance = self._agents.get(agent_id)
        if instance is None:
            raise AgentNotFoundError(agent_id)
        return instance

    def list_agents(self) -> List[AgentInstance]:
        """All agents in registration order."""
        return list(self._agents.values())

    def agents_for_role(self, role: Optional[RoleLike]) -> List[AgentInstance]:
        """Agents still accepting work whose role matches, or all of them when role is None."""
        return [
            a for a in self._agents.values()
            if not a.draining and (role is None or a.role == role)
        ]

    async def deregister(self, agent_id: str, poll_interval_seconds: float = 0.25) -> AgentInstance:
        """
        Remove an agent once its in-flight work has drained.

        The agent stops receiving new tasks immediately; in-flight tasks are
        never cancelled.
        """
        instance = self.require(agent_id)
        instance.draining = True

        while instance.active_tasks > 0:
            self.logger.debug(f"Waiting for agent {agent_id} to drain {instance.active_tasks} task(s)")
            await asyncio.sleep(poll_interval_seconds)

        self._agents.pop(agent_id, None)
        self.logger.info(f"Deregistered agent {agent_id}")
        return instance

    @property
    def active_count(self) -> int:
        return sum(a.active_tasks for a in self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)
