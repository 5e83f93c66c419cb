"""
Core Pydantic data models for Agent Flow.
"""

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import List, Optional, Dict, Any, Union, Callable
from datetime import datetime
from enum import Enum

from .errors import ErrorDetails


class AgentRole(str, Enum):
    """Built-in agent specializations."""
    ARCHITECT = "architect"
    ENGINEER = "engineer"
    ANALYST = "analyst"
    SECURITY = "security"
    REVIEWER = "reviewer"
    SYNTHESIZER = "synthesizer"
    EXPLORER = "explorer"


RoleLike = Union[AgentRole, str]


def resolve_role(value: RoleLike) -> RoleLike:
    """
    Normalize a role value.

    Known role names become AgentRole members; any other non-empty string is
    kept as a custom role.

    Raises:
        ValueError: If the role is empty or not a string
    """
    if isinstance(value, AgentRole):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid agent role: {value!r}")
    try:
        return AgentRole(value)
    except ValueError:
        return value


def role_name(role: RoleLike) -> str:
    """Plain string name of a built-in or custom role."""
    return role.value if isinstance(role, AgentRole) else role


class AgentState(str, Enum):
    """Agent load state."""
    IDLE = "idle"
    BUSY = "busy"


class TaskState(str, Enum):
    """Task lifecycle states."""
    PENDING = "pending"
    QUEUED = "queued"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.FAILED, TaskState.CANCELLED)


class Strategy(str, Enum):
    """Workflow execution strategies."""
    PARALLEL = "parallel"
    PIPELINE = "pipeline"
    MAP_REDUCE = "map_reduce"
    CONSENSUS = "consensus"
    HIERARCHICAL = "hierarchical"


class WorkflowState(str, Enum):
    """Workflow lifecycle states."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


MIN_PRIORITY = 1
MAX_PRIORITY = 10
DEFAULT_PRIORITY = 5


class TaskSpec(BaseModel):
    """Task creation request; also the shape of a workflow step."""
    title: str = Field(..., min_length=1)
    description: str = ""
    input: Dict[str, Any] = Field(default_factory=dict)
    required_role: Optional[RoleLike] = None
    required_capabilities: List[str] = Field(default_factory=list)
    priority: int = Field(default=DEFAULT_PRIORITY, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    parent_task_id: Optional[str] = None
    workflow_id: Optional[str] = None
    auto_submit: bool = True

    @field_validator('title')
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v

    @field_validator('required_role', mode='before')
    @classmethod
    def normalize_role(cls, v):
        if v is None:
            return v
        return resolve_role(v)


class TaskView(BaseModel):
    """Public view of a task handed to an agent's execute function."""
    id: str
    title: str
    description: str = ""
    input: Dict[str, Any] = Field(default_factory=dict)
    workflow_id: Optional[str] = None


class TaskRecord(BaseModel):
    """Full task descriptor owned by the task store."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(..., min_length=1)
    sequence: int = Field(..., ge=0)
    title: str = Field(..., min_length=1)
    description: str = ""
    input: Dict[str, Any] = Field(default_factory=dict)
    required_role: Optional[RoleLike] = None
    required_capabilities: List[str] = Field(default_factory=list)
    priority: int = DEFAULT_PRIORITY
    parent_task_id: Optional[str] = None
    workflow_id: Optional[str] = None
    state: TaskState = TaskState.PENDING
    assigned_agent: Optional[str] = None
    result: Optional[Any] = None
    error: Optional[ErrorDetails] = None
    exception: Optional[BaseException] = Field(default=None, exclude=True, repr=False)
    created_at: datetime = Field(default_factory=datetime.now)
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_view(self) -> TaskView:
        """Build the view passed to agents."""
        return TaskView(
            id=self.id,
            title=self.title,
            description=self.description,
            input=self.input,
            workflow_id=self.workflow_id,
        )

    def latency_ms(self) -> Optional[float]:
        """Milliseconds from assignment to terminal transition."""
        if self.assigned_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.assigned_at).total_seconds() * 1000


class WorkflowSpec(BaseModel):
    """Workflow execution request."""
    name: str = Field(..., min_length=1)
    strategy: Optional[Union[Strategy, str]] = None
    steps: List[TaskSpec] = Field(default_factory=list)
    reducer: Optional[Callable[[List[Any]], Any]] = None
    voter: Optional[Callable[[List[Any]], Any]] = None


class WorkflowRecord(BaseModel):
    """Execution record for a workflow."""
    id: str = Field(..., min_length=1)
    name: str
    strategy: Strategy
    steps: List[TaskSpec] = Field(default_factory=list)
    task_ids: List[str] = Field(default_factory=list)
    state: WorkflowState = WorkflowState.RUNNING
    result: Optional[Any] = None
    error: Optional[ErrorDetails] = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def duration_ms(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000


class OrchestratorMetrics(BaseModel):
    """Process-lifetime counters."""
    tasks_created: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    tasks_cancelled: int = 0
    total_latency_ms: float = 0.0
    agent_utilisation: float = 0.0
    workflows_run: int = 0


class AgentSummary(BaseModel):
    """Per-agent line of the status report."""
    id: str
    role: RoleLike
    name: str
    state: AgentState
    active_tasks: int
    max_concurrency: int
    total_tasks: int
    avg_latency_ms: int
    capabilities: List[str] = Field(default_factory=list)


class OrchestratorStatus(BaseModel):
    """Read-only snapshot of orchestrator health."""
    agents: List[AgentSummary] = Field(default_factory=list)
    agent_count: int = 0
    active_count: int = 0
    queue_length: int = 0
    metrics: OrchestratorMetrics = Field(default_factory=OrchestratorMetrics)
    generated_at: datetime = Field(default_factory=datetime.now)
