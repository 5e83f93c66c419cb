"""
Agent Flow: multi-agent task orchestration engine.

Registers heterogeneous agents, schedules prioritized tasks onto them by
role and fit, and runs compound workflows over those tasks.
"""

from .agents import BaseAgent
from .models import (
    AgentRole,
    Strategy,
    TaskRecord,
    TaskSpec,
    TaskState,
    TaskView,
    WorkflowSpec,
)
from .orchestration import AgentOrchestrator, EventBus, create_default_orchestrator
from .utils import configure_logging, get_config

__version__ = "0.1.0"

__all__ = [
    'AgentOrchestrator',
    'create_default_orchestrator',
    'EventBus',
    'BaseAgent',
    'AgentRole',
    'Strategy',
    'TaskRecord',
    'TaskSpec',
    'TaskState',
    'TaskView',
    'WorkflowSpec',
    'configure_logging',
    'get_config',
]
