"""
Workflow engine for Agent Flow.

A workflow runs a list of step specs as one unit under a strategy and
returns a single aggregated result. Every step becomes an ordinary task
tagged with the workflow id, so it is scheduled exactly like any other task.
"""

import asyncio
import inspect
import itertools
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from ..models.core import (
    OrchestratorMetrics, Strategy, TaskRecord, TaskSpec, WorkflowRecord,
    WorkflowSpec, WorkflowState
)
from ..models.errors import (
    ConsensusFailedError, ErrorCategory, NoEligibleAgentsError,
    TaskValidationError, UnknownStrategyError, WorkflowNotFoundError,
    details_from_exception
)
from ..models.events import EventType
from ..utils.config import OrchestrationConfig
from ..utils.logging import LoggerMixin
from .events import EventBus
from .registry import AgentRegistry
from .tasks import make_id

CreateTaskFn = Callable[[TaskSpec], str]
AwaitTaskFn = Callable[[str], Awaitable[TaskRecord]]

# Key used when a non-mapping pipeline result is handed to the next step
PREVIOUS_RESULT_KEY = "previousResult"


async def _apply(fn: Callable[[List[Any]], Any], results: List[Any]) -> Any:
    """Call a reducer or voter, awaiting it when it is asynchronous."""
    value = fn(results)
    if inspect.isawaitable(value):
        value = await value
    return value


def _identity(results: List[Any]) -> Any:
    return results


def _first(results: List[Any]) -> Any:
    return results[0]


class WorkflowEngine(LoggerMixin):
    """
    Executes workflows on top of the task API of an orchestrator.

    Steps are created with ``create_task`` and awaited with ``await_task``,
    both supplied by the owning orchestrator.
    """

    def __init__(
        self,
        create_task: CreateTaskFn,
        await_task: AwaitTaskFn,
        registry: AgentRegistry,
        events: EventBus,
        metrics: OrchestratorMetrics,
        config: OrchestrationConfig
    ):
        self._create_task = create_task
        self._await_task = await_task
        self.registry = registry
        self.events = events
        self.metrics = metrics
        self.config = config
        self._workflows: Dict[str, WorkflowRecord] = {}
        self._sequence = itertools.count(1)
        self._runners = {
            Strategy.PARALLEL: self._run_parallel,
            Strategy.PIPELINE: self._run_pipeline,
            Strategy.MAP_REDUCE: self._run_map_reduce,
            Strategy.CONSENSUS: self._run_consensus,
            Strategy.HIERARCHICAL: self._run_hierarchical,
        }

    def resolve_strategy(self, value: Optional[Union[Strategy, str]]) -> Strategy:
        if value is None:
            return self.config.default_strategy
        try:
            return Strategy(value)
        except ValueError:
            raise UnknownStrategyError(value) from None

    def coerce_spec(self, spec: Union[WorkflowSpec, Mapping]) -> WorkflowSpec:
        if isinstance(spec, WorkflowSpec):
            return spec
        if not isinstance(spec, Mapping):
            raise TaskValidationError(f"Workflow spec must be a WorkflowSpec or mapping, got {type(spec).__name__}")
        try:
            return WorkflowSpec.model_validate(dict(spec))
        except ValidationError as e:
            raise TaskValidationError(f"Invalid workflow spec: {e}") from e

    def validate(self, spec: WorkflowSpec) -> Strategy:
        """
        Check a workflow before anything is created.

        Returns:
            Strategy: The resolved strategy

        Raises:
            UnknownStrategyError: If the strategy name is not known
            TaskValidationError: If a single-template strategy has no steps
            NoEligibleAgentsError: If no agent can take part in a consensus round
        """
        strategy = self.resolve_strategy(spec.strategy)

        if strategy in (Strategy.CONSENSUS, Strategy.HIERARCHICAL) and not spec.steps:
            raise TaskValidationError(f"{strategy.value} workflow requires at least one step")

        if strategy == Strategy.CONSENSUS:
            if not self.registry.agents_for_role(spec.steps[0].required_role):
                raise NoEligibleAgentsError()

        return strategy

    async def execute(self, spec: Union[WorkflowSpec, Mapping]) -> Any:
        """
        Execute a workflow and return its aggregated result.

        Any error raised by the strategy marks the workflow failed and is
        re-raised to the caller.
        """
        spec = self.coerce_spec(spec)
        strategy = self.validate(spec)

        record = WorkflowRecord(
            id=make_id("wf", next(self._sequence)),
            name=spec.name,
            strategy=strategy,
            steps=list(spec.steps),
        )
        self._workflows[record.id] = record
        self.metrics.workflows_run += 1

        self.log_operation_start("execute_workflow", workflow_id=record.id,
                                 name=record.name, strategy=strategy.value)
        self.events.emit(EventType.WORKFLOW_STARTED, workflow_id=record.id,
                         details={"name": record.name, "strategy": strategy.value})

        try:
            result = await self._runners[strategy](record, spec)

        except Exception as e:
            record.state = WorkflowState.FAILED
            record.error = details_from_exception(e, category=ErrorCategory.WORKFLOW, workflow_id=record.id)
            record.completed_at = datetime.now()

            self.log_operation_error("execute_workflow", e, workflow_id=record.id)
            self.events.emit(EventType.WORKFLOW_FAILED, workflow_id=record.id,
                             details={"error": str(e), "error_type": type(e).__name__})
            raise

        record.state = WorkflowState.COMPLETED
        record.result = result
        record.completed_at = datetime.now()

        self.log_operation_success("execute_workflow", record.duration_ms, workflow_id=record.id)
        self.events.emit(EventType.WORKFLOW_COMPLETED, workflow_id=record.id,
                         details={"duration_ms": record.duration_ms})
        return result

    def get(self, workflow_id: str) -> WorkflowRecord:
        """Snapshot of a workflow record."""
        record = self._workflows.get(workflow_id)
        if record is None:
            raise WorkflowNotFoundError(workflow_id)
        return record.model_copy(update={"task_ids": list(record.task_ids)})

    def list_workflows(self) -> List[WorkflowRecord]:
        return list(self._workflows.values())

    # Strategy runners

    def _submit_step(self, record: WorkflowRecord, step: TaskSpec, **updates: Any) -> str:
        task_spec = step.model_copy(update={"workflow_id": record.id, "auto_submit": True, **updates})
        task_id = self._create_task(task_spec)
        record.task_ids.append(task_id)
        return task_id

    async def _gather_results(self, task_ids: List[str]) -> List[Any]:
        completed = await asyncio.gather(*(self._await_task(task_id) for task_id in task_ids))
        return [task.result for task in completed]

    async def _run_parallel(self, record: WorkflowRecord, spec: WorkflowSpec) -> List[Any]:
        task_ids = [self._submit_step(record, step) for step in spec.steps]
        return await self._gather_results(task_ids)

    async def _run_pipeline(self, record: WorkflowRecord, spec: WorkflowSpec) -> List[Any]:
        previous: Dict[str, Any] = {}
        results = []

        for step in spec.steps:
            # The previous result wins over the step's static input
            task_id = self._submit_step(record, step, input={**step.input, **previous})
            completed = await self._await_task(task_id)
            results.append(completed.result)

            if isinstance(completed.result, Mapping):
                previous = dict(completed.result)
            else:
                previous = {PREVIOUS_RESULT_KEY: completed.result}

        return results

    async def _run_map_reduce(self, record: WorkflowRecord, spec: WorkflowSpec) -> Any:
        task_ids = [self._submit_step(record, step) for step in spec.steps]
        mapped = await self._gather_results(task_ids)
        return await _apply(spec.reducer or _identity, mapped)

    async def _run_consensus(self, record: WorkflowRecord, spec: WorkflowSpec) -> Any:
        template = spec.steps[0]

        eligible = self.registry.agents_for_role(template.required_role)
        if not eligible:
            raise NoEligibleAgentsError(workflow_id=record.id)

        copies = min(len(eligible), self.config.consensus_max_replicas)
        task_ids = [
            self._submit_step(record, template, title=f"{template.title} [consensus-{i}]")
            for i in range(copies)
        ]

        settled = await asyncio.gather(
            *(self._await_task(task_id) for task_id in task_ids),
            return_exceptions=True
        )
        successes = [outcome.result for outcome in settled if not isinstance(outcome, BaseException)]

        if not successes:
            raise ConsensusFailedError(workflow_id=record.id, failures=len(settled))

        self.logger.info(f"Consensus for workflow {record.id}: {len(successes)}/{len(settled)} succeeded")
        return await _apply(spec.voter or _first, successes)

    async def _run_hierarchical(self, record: WorkflowRecord, spec: WorkflowSpec) -> Any:
        root_id = self._submit_step(record, spec.steps[0])
        root = await self._await_task(root_id)

        sub_specs = root.result
        if not isinstance(sub_specs, (list, tuple)) or not sub_specs:
            return root.result

        children = []
        for sub in sub_specs:
            try:
                child = TaskSpec.model_validate(sub)
            except ValidationError as e:
                raise TaskValidationError(
                    f"Root task {root_id} returned an invalid sub-task spec: {e}",
                    workflow_id=record.id,
                    task_id=root_id,
                ) from e
            children.append(child)

        child_ids = [self._submit_step(record, child, parent_task_id=root_id) for child in children]
        return {
            "root": root.result,
            "children": await self._gather_results(child_ids),
        }
