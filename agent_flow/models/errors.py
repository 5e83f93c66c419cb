"""
Error models and exceptions for Agent Flow.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class ErrorSeverity(str, Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Categories of errors."""
    VALIDATION = "validation"
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    SCHEDULING = "scheduling"
    WORKFLOW = "workflow"
    SYSTEM = "system"


class ErrorDetails(BaseModel):
    """Serializable error information stored on failed tasks and workflows."""
    error_type: str = Field(..., min_length=1)
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    context: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)
    task_id: Optional[str] = None
    agent_id: Optional[str] = None
    workflow_id: Optional[str] = None


# Custom exceptions
class AgentFlowError(Exception):
    """Base exception for Agent Flow."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.SYSTEM,
                 severity: ErrorSeverity = ErrorSeverity.MEDIUM, **kwargs):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = kwargs

    def to_details(self) -> ErrorDetails:
        """Build the serializable form of this error."""
        return ErrorDetails(
            error_type=type(self).__name__,
            category=self.category,
            severity=self.severity,
            message=self.message,
            context={k: v for k, v in self.context.items() if k not in ("task_id", "agent_id", "workflow_id")},
            task_id=self.context.get("task_id"),
            agent_id=self.context.get("agent_id"),
            workflow_id=self.context.get("workflow_id"),
        )


class TaskValidationError(AgentFlowError):
    """Caller supplied an invalid task, agent or workflow specification."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.VALIDATION, ErrorSeverity.HIGH, **kwargs)


class AgentNotFoundError(AgentFlowError):
    """Operation referenced an agent id that is not registered."""

    def __init__(self, agent_id: str, **kwargs):
        super().__init__(f"Agent {agent_id} not found", ErrorCategory.VALIDATION,
                         ErrorSeverity.HIGH, agent_id=agent_id, **kwargs)


class TaskNotFoundError(AgentFlowError):
    """Operation referenced an unknown task id."""

    def __init__(self, task_id: str, **kwargs):
        super().__init__(f"Task {task_id} not found", ErrorCategory.VALIDATION,
                         ErrorSeverity.HIGH, task_id=task_id, **kwargs)


class WorkflowNotFoundError(AgentFlowError):
    """Operation referenced an unknown workflow id."""

    def __init__(self, workflow_id: str, **kwargs):
        super().__init__(f"Workflow {workflow_id} not found", ErrorCategory.VALIDATION,
                         ErrorSeverity.HIGH, workflow_id=workflow_id, **kwargs)


class UnknownStrategyError(AgentFlowError):
    """Workflow requested a strategy that does not exist."""

    def __init__(self, strategy: Any, **kwargs):
        super().__init__(f"Unknown strategy: {strategy}", ErrorCategory.VALIDATION,
                         ErrorSeverity.HIGH, strategy=str(strategy), **kwargs)


class NoEligibleAgentsError(AgentFlowError):
    """No registered agent can take part in a consensus round."""

    def __init__(self, message: str = "No eligible agents for consensus", **kwargs):
        super().__init__(message, ErrorCategory.VALIDATION, ErrorSeverity.HIGH, **kwargs)


class InvalidTaskStateError(AgentFlowError):
    """Requested transition is not allowed from the task's current state."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.SCHEDULING, ErrorSeverity.MEDIUM, **kwargs)


class TaskFailedError(AgentFlowError):
    """Base class for errors that put a task into the failed state."""


class TaskExecutionError(TaskFailedError):
    """The agent's execute function raised."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.EXECUTION, ErrorSeverity.MEDIUM, **kwargs)


class TaskTimeoutError(TaskFailedError):
    """The agent did not settle within the task timeout."""

    def __init__(self, task_id: str, timeout_seconds: float, **kwargs):
        super().__init__(f"Task {task_id} timed out after {timeout_seconds}s",
                         ErrorCategory.TIMEOUT, ErrorSeverity.MEDIUM,
                         task_id=task_id, timeout_seconds=timeout_seconds, **kwargs)


class TaskCancelledError(AgentFlowError):
    """The task was cancelled before it reached a result."""

    def __init__(self, task_id: str, **kwargs):
        super().__init__(f"Task {task_id} was cancelled", ErrorCategory.SCHEDULING,
                         ErrorSeverity.LOW, task_id=task_id, **kwargs)


class AwaitTimeoutError(AgentFlowError):
    """A caller stopped waiting for a task before it reached a terminal state."""

    def __init__(self, task_id: str, timeout_seconds: float, **kwargs):
        super().__init__(f"Task {task_id} timed out after {timeout_seconds}s while awaiting",
                         ErrorCategory.TIMEOUT, ErrorSeverity.LOW,
                         task_id=task_id, timeout_seconds=timeout_seconds, **kwargs)


class ConsensusFailedError(AgentFlowError):
    """Every duplicate in a consensus round failed."""

    def __init__(self, message: str = "All consensus agents failed", **kwargs):
        super().__init__(message, ErrorCategory.WORKFLOW, ErrorSeverity.HIGH, **kwargs)


def details_from_exception(error: BaseException, category: ErrorCategory = ErrorCategory.EXECUTION,
                           **context) -> ErrorDetails:
    """Build ErrorDetails for any exception, using to_details() for AgentFlowError."""
    if isinstance(error, AgentFlowError):
        details = error.to_details()
        updates = {k: v for k, v in context.items() if getattr(details, k, None) is None}
        return details.model_copy(update=updates) if updates else details

    return ErrorDetails(
        error_type=type(error).__name__,
        category=category,
        severity=ErrorSeverity.MEDIUM,
        message=str(error) or type(error).__name__,
        task_id=context.get("task_id"),
        agent_id=context.get("agent_id"),
        workflow_id=context.get("workflow_id"),
    )
