"""
Read-only health reporting for an orchestrator.
"""

from ..models.core import OrchestratorMetrics, OrchestratorStatus
from .registry import AgentRegistry
from .scheduler import TaskQueue


class StatusReporter:
    """Builds status snapshots without mutating any orchestrator state."""

    def __init__(self, registry: AgentRegistry, queue: TaskQueue, metrics: OrchestratorMetrics):
        self.registry = registry
        self.queue = queue
        self.metrics = metrics

    def status(self) -> OrchestratorStatus:
        agents = self.registry.list_agents()
        return OrchestratorStatus(
            agents=[agent.summary() for agent in agents],
            agent_count=len(agents),
            active_count=self.registry.active_count,
            queue_length=len(self.queue),
            metrics=self.metrics.model_copy(),
        )
