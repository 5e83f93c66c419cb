"""
Task store and lifecycle state machine for Agent Flow.

The store exclusively owns task records. Every state change goes through
one of the transition methods below, which enforce the lifecycle

    pending -> queued -> assigned -> in_progress -> completed | failed

with ``cancelled`` reachable from any pre-terminal state. Terminal records
are never modified again.
"""

import asyncio
import itertools
import time
from typing import Any, Dict, List, Optional
from datetime import datetime

from ..models.core import TaskRecord, TaskSpec, TaskState
from ..models.errors import (
    AwaitTimeoutError, details_from_exception,
    InvalidTaskStateError, TaskCancelledError, TaskNotFoundError
)
from ..utils.logging import get_logger

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    """Encode a non-negative integer in base 36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if value == 0:
            break
    return "".join(reversed(digits))


def make_id(prefix: str, sequence: int) -> str:
    """Build a sequence- and time-based identifier, e.g. ``task-3-lq2x9k0a``."""
    return f"{prefix}-{sequence}-{to_base36(int(time.time() * 1000))}"


class TaskStore:
    """Holds task records and the completion signal each awaiter waits on."""

    def __init__(self):
        self.logger = get_logger(f"{__name__}.TaskStore")
        self._tasks: Dict[str, TaskRecord] = {}
        self._signals: Dict[str, asyncio.Event] = {}
        self._sequence = itertools.count(1)

    def create(self, spec: TaskSpec) -> TaskRecord:
        """Create a pending task record from a validated spec."""
        sequence = next(self._sequence)
        record = TaskRecord(
            id=make_id("task", sequence),
            sequence=sequence,
            title=spec.title,
            description=spec.description,
            input=dict(spec.input),
            required_role=spec.required_role,
            required_capabilities=list(spec.required_capabilities),
            priority=spec.priority,
            parent_task_id=spec.parent_task_id,
            workflow_id=spec.workflow_id,
        )
        self._tasks[record.id] = record
        self._signals[record.id] = asyncio.Event()
        return record

    def get(self, task_id: str) -> Optional[TaskRecord]:
        return self._tasks.get(task_id)

    def require(self, task_id: str) -> TaskRecord:
        record = self._tasks.get(task_id)
        if record is None:
            raise TaskNotFoundError(task_id)
        return record

    def snapshot(self, task_id: str) -> Optional[TaskRecord]:
        """Copy of a task record that callers may hold without affecting the store."""
        record = self._tasks.get(task_id)
        return self._copy(record) if record is not None else None

    @staticmethod
    def _copy(record: TaskRecord) -> TaskRecord:
        # The result payload is opaque and handed back as is
        return record.model_copy(update={
            "input": dict(record.input),
            "required_capabilities": list(record.required_capabilities),
        })

    def list_tasks(self, workflow_id: Optional[str] = None) -> List[TaskRecord]:
        return [
            t for t in self._tasks.values()
            if workflow_id is None or t.workflow_id == workflow_id
        ]

    # Transitions

    def _transition(self, record: TaskRecord, allowed: tuple, target: TaskState) -> None:
        if record.state not in allowed:
            raise InvalidTaskStateError(
                f"Task {record.id} cannot move from {record.state.value} to {target.value}",
                task_id=record.id,
                state=record.state.value,
            )
        record.state = target

    def mark_queued(self, task_id: str) -> TaskRecord:
        record = self.require(task_id)
        self._transition(record, (TaskState.PENDING,), TaskState.QUEUED)
        return record

    def mark_assigned(self, task_id: str, agent_id: str) -> TaskRecord:
        record = self.require(task_id)
        self._transition(record, (TaskState.QUEUED,), TaskState.ASSIGNED)
        record.assigned_agent = agent_id
        record.assigned_at = datetime.now()
        return record

    def mark_in_progress(self, task_id: str) -> TaskRecord:
        record = self.require(task_id)
        self._transition(record, (TaskState.ASSIGNED,), TaskState.IN_PROGRESS)
        record.started_at = datetime.now()
        return record

    def complete(self, task_id: str, result: Any) -> bool:
        """
        Store a result and mark the task completed.

        Returns:
            bool: False if the task was already terminal and the result was discarded
        """
        record = self.require(task_id)
        if record.state.is_terminal:
            self.logger.debug(f"Discarding late result for {task_id} in state {record.state.value}")
            return False
        self._transition(record, (TaskState.IN_PROGRESS,), TaskState.COMPLETED)
        record.result = result
        self._settle(record)
        return True

    def fail(self, task_id: str, error: BaseException) -> bool:
        """
        Store an error and mark the task failed.

        Returns:
            bool: False if the task was already terminal and the error was discarded
        """
        record = self.require(task_id)
        if record.state.is_terminal:
            self.logger.debug(f"Discarding late failure for {task_id} in state {record.state.value}")
            return False
        self._transition(
            record, (TaskState.ASSIGNED, TaskState.IN_PROGRESS), TaskState.FAILED
        )
        record.exception = error
        record.error = details_from_exception(error, task_id=record.id, agent_id=record.assigned_agent)
        self._settle(record)
        return True

    def cancel(self, task_id: str) -> bool:
        """Mark a pre-terminal task cancelled. Returns False if it was already terminal."""
        record = self.require(task_id)
        if record.state.is_terminal:
            return False
        error = TaskCancelledError(task_id, agent_id=record.assigned_agent)
        record.state = TaskState.CANCELLED
        record.exception = error
        record.error = error.to_details()
        self._settle(record)
        return True

    def _settle(self, record: TaskRecord) -> None:
        record.completed_at = datetime.now()
        self._signals[record.id].set()

    # Waiting

    async def wait(self, task_id: str, timeout: float) -> TaskRecord:
        """
        Suspend until the task is terminal.

        Returns:
            TaskRecord: Snapshot of the completed task

        Raises:
            TaskNotFoundError: If the id is unknown
            AwaitTimeoutError: If the task is still running after ``timeout`` seconds
            Exception: The stored task error for failed or cancelled tasks
        """
        record = self.require(task_id)
        if not record.state.is_terminal:
            try:
                await asyncio.wait_for(self._signals[task_id].wait(), timeout)
            except asyncio.TimeoutError:
                raise AwaitTimeoutError(task_id, timeout) from None
        return self.outcome(task_id)

    def outcome(self, task_id: str) -> TaskRecord:
        """Return the snapshot of a completed task or raise its stored error."""
        record = self.require(task_id)
        if record.state == TaskState.COMPLETED:
            return self._copy(record)
        if record.state in (TaskState.FAILED, TaskState.CANCELLED) and record.exception is not None:
            # Drop frames left by earlier awaiters
            raise record.exception.with_traceback(None)
        raise InvalidTaskStateError(
            f"Task {task_id} is not terminal (state {record.state.value})", task_id=task_id
        )
