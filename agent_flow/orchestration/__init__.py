"""
Agent Orchestration System for Agent Flow.

This package provides the orchestration core:
- Agent registry with load and latency bookkeeping
- Task store with the task lifecycle state machine
- Priority scheduler with role constraints and agent scoring
- Workflow engine with parallel, pipeline, map-reduce, consensus and
  hierarchical strategies
- Per-orchestrator event bus and status reporting
"""

from .orchestrator import (
    AgentOrchestrator,
    create_default_orchestrator
)

from .registry import (
    AgentRegistry,
    AgentInstance
)

from .scheduler import (
    AgentSelector,
    Scheduler,
    TaskQueue
)

from .tasks import TaskStore
from .workflows import WorkflowEngine
from .events import EventBus
from .diagnostics import StatusReporter

__all__ = [
    # Orchestrator components
    'AgentOrchestrator',
    'create_default_orchestrator',

    # Registry components
    'AgentRegistry',
    'AgentInstance',

    # Scheduling and execution
    'AgentSelector',
    'Scheduler',
    'TaskQueue',
    'TaskStore',
    'WorkflowEngine',

    # Events and diagnostics
    'EventBus',
    'StatusReporter'
]
