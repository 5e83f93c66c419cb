"""
Data models for Agent Flow.
"""

from .core import (
    AgentRole,
    AgentState,
    AgentSummary,
    OrchestratorMetrics,
    OrchestratorStatus,
    Strategy,
    TaskRecord,
    TaskSpec,
    TaskState,
    TaskView,
    WorkflowRecord,
    WorkflowSpec,
    WorkflowState,
    resolve_role,
    role_name,
)
from .errors import (
    AgentFlowError,
    AgentNotFoundError,
    AwaitTimeoutError,
    ConsensusFailedError,
    ErrorCategory,
    ErrorDetails,
    details_from_exception,
    ErrorSeverity,
    InvalidTaskStateError,
    NoEligibleAgentsError,
    TaskCancelledError,
    TaskExecutionError,
    TaskFailedError,
    TaskNotFoundError,
    TaskTimeoutError,
    TaskValidationError,
    UnknownStrategyError,
    WorkflowNotFoundError,
)
from .events import EventType, OrchestratorEvent

__all__ = [
    'AgentRole', 'AgentState', 'AgentSummary', 'OrchestratorMetrics',
    'OrchestratorStatus', 'Strategy', 'TaskRecord', 'TaskSpec', 'TaskState',
    'TaskView', 'WorkflowRecord', 'WorkflowSpec', 'WorkflowState', 'resolve_role', 'role_name',
    'AgentFlowError', 'AgentNotFoundError', 'AwaitTimeoutError',
    'ConsensusFailedError', 'ErrorCategory', 'ErrorDetails', 'ErrorSeverity',
    'InvalidTaskStateError', 'NoEligibleAgentsError', 'TaskCancelledError',
    'TaskExecutionError', 'TaskFailedError', 'TaskNotFoundError',
    'TaskTimeoutError', 'TaskValidationError', 'UnknownStrategyError',
    'WorkflowNotFoundError', 'details_from_exception', 'EventType', 'OrchestratorEvent',
]
