"""
Pytest configuration and fixtures for Agent Flow tests.
"""

import asyncio
from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio

from agent_flow.agents.base import BaseAgent
from agent_flow.models.core import TaskView
from agent_flow.models.events import OrchestratorEvent
from agent_flow.orchestration.orchestrator import AgentOrchestrator
from agent_flow.utils.config import OrchestrationConfig, set_config


class MockAgent(BaseAgent):
    """Mock agent with configurable delay and failure."""

    def __init__(
        self,
        name: str = "mock",
        role: str = "engineer",
        execution_delay: float = 0.0,
        should_fail: bool = False,
        result: Optional[Any] = None,
        **kwargs
    ):
        super().__init__(name=name, role=role, **kwargs)
        self.execution_delay = execution_delay
        self.should_fail = should_fail
        self.result = result
        self.executions: List[TaskView] = []

    async def execute(self, task: TaskView) -> Any:
        self.executions.append(task)

        # Simulate processing time
        await asyncio.sleep(self.execution_delay)

        if self.should_fail:
            raise RuntimeError(f"Mock failure in {self.name}")
        if self.result is not None:
            return self.result
        return {"agent": self.name, "title": task.title}


async def echo(task: TaskView) -> Dict[str, Any]:
    """Execute function returning the task title."""
    return {"echo": task.title}


@pytest.fixture(autouse=True)
def reset_global_config():
    """Drop any cached global configuration between tests."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def config() -> OrchestrationConfig:
    """Orchestration config with short timings for tests."""
    return OrchestrationConfig(
        task_timeout_seconds=2.0,
        deregister_poll_interval_seconds=0.01,
    )


@pytest_asyncio.fixture
async def orchestrator(config: OrchestrationConfig) -> AsyncGenerator[AgentOrchestrator, None]:
    """Orchestrator that is shut down after the test."""
    instance = AgentOrchestrator(config)
    yield instance
    await instance.shutdown()


@pytest.fixture
def events(orchestrator: AgentOrchestrator) -> List[OrchestratorEvent]:
    """Every event emitted by the orchestrator fixture, in order."""
    received: List[OrchestratorEvent] = []
    orchestrator.subscribe(received.append)
    return received


@pytest.fixture
def mock_agent() -> MockAgent:
    """Engineer mock agent."""
    return MockAgent(name="test_agent", role="engineer", capabilities=["coding"])


@pytest.fixture
def failing_mock_agent() -> MockAgent:
    """Reviewer mock agent that always fails."""
    return MockAgent(name="failing_agent", role="reviewer", should_fail=True)
