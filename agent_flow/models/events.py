"""
Lifecycle event models published by the orchestrator.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class EventType(str, Enum):
    """Observable lifecycle notifications."""
    AGENT_REGISTERED = "agent:registered"
    AGENT_DEREGISTERED = "agent:deregistered"
    TASK_CREATED = "task:created"
    TASK_ASSIGNED = "task:assigned"
    TASK_STARTED = "task:started"
    TASK_COMPLETED = "task:completed"
    TASK_FAILED = "task:failed"
    TASK_CANCELLED = "task:cancelled"
    WORKFLOW_STARTED = "workflow:started"
    WORKFLOW_COMPLETED = "workflow:completed"
    WORKFLOW_FAILED = "workflow:failed"


class OrchestratorEvent(BaseModel):
    """A single lifecycle notification."""
    type: EventType
    timestamp: datetime = Field(default_factory=datetime.now)
    agent_id: Optional[str] = None
    task_id: Optional[str] = None
    workflow_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
