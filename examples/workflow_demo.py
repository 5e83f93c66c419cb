"""
Demonstration of task scheduling and workflow strategies.
"""

import asyncio
import random

from agent_flow.models.core import AgentRole, TaskView
from agent_flow.models.errors import ConsensusFailedError, TaskFailedError
from agent_flow.models.events import EventType
from agent_flow.orchestration.orchestrator import create_default_orchestrator
from agent_flow.utils.config import get_config
from agent_flow.utils.logging import configure_logging


async def estimate(task: TaskView):
    """Analyst that sometimes fails, to exercise consensus tolerance."""
    await asyncio.sleep(random.uniform(0.01, 0.05))
    if random.random() < 0.3:
        raise RuntimeError("estimate diverged")
    return {"estimate": round(random.uniform(8, 12), 1)}


async def demo_workflows():
    """Run one workflow per strategy on the default agents."""
    print("=== Agent Flow Workflow Demo ===\n")

    orchestrator = create_default_orchestrator()
    for i in range(4):
        orchestrator.register_agent(AgentRole.ANALYST, estimate, name=f"Estimator-{i}")

    orchestrator.subscribe(
        lambda event: print(f"   [{event.type.value}] {event.task_id}: {event.details.get('error')}"),
        event_types=[EventType.TASK_FAILED],
    )

    print("1. Single task...")
    task_id = orchestrator.create_task({"title": "Add login form", "required_role": "engineer", "priority": 2})
    record = await orchestrator.await_task(task_id)
    print(f"   {record.id}: {record.result['code']}")

    print("\n2. Pipeline: design -> implement -> review...")
    results = await orchestrator.execute_workflow({
        "name": "feature",
        "strategy": "pipeline",
        "steps": [
            {"title": "Design payments", "required_role": "architect"},
            {"title": "Implement payments", "required_role": "engineer"},
            {"title": "Review payments", "required_role": "reviewer"},
        ],
    })
    for result in results:
        print(f"   {sorted(result)}")

    print("\n3. Map-reduce: audit three services...")
    approved = await orchestrator.execute_workflow({
        "name": "audit",
        "strategy": "map_reduce",
        "steps": [{"title": f"Audit {svc}", "required_role": "security"} for svc in ("auth", "billing", "search")],
        "reducer": lambda audits: sum(len(a["vulnerabilities"]) for a in audits),
    })
    print(f"   Vulnerabilities found: {approved}")

    print("\n4. Consensus: average the successful estimates...")
    try:
        average = await orchestrator.execute_workflow({
            "name": "estimate",
            "strategy": "consensus",
            "steps": [{"title": "Estimate effort", "required_role": "analyst"}],
            "voter": lambda results: sum(r.get("estimate", 0) for r in results) / len(results),
        })
        print(f"   Consensus estimate: {average:.1f}")
    except ConsensusFailedError as e:
        print(f"   Consensus failed: {e}")

    print("\n5. Hierarchical: a planner that delegates...")

    async def planner(task: TaskView):
        return [
            {"title": "Write migration", "required_role": "engineer"},
            {"title": "Load test", "required_role": "engineer"},
        ]

    orchestrator.register_agent("planner", planner, name="Planner")
    tree = await orchestrator.execute_workflow({
        "name": "rollout",
        "strategy": "hierarchical",
        "steps": [{"title": "Plan rollout", "required_role": "planner"}],
    })
    for child in tree["children"]:
        print(f"   {child['code']}")

    print("\n6. A task that outlives its timeout...")

    async def slow(task: TaskView):
        await asyncio.sleep(0.5)
        return "finished"

    orchestrator.config.task_timeout_seconds = 0.1
    orchestrator.register_agent("batch", slow)
    task_id = orchestrator.create_task({"title": "Nightly batch", "required_role": "batch"})
    try:
        await orchestrator.await_task(task_id, timeout=1.0)
    except TaskFailedError as e:
        print(f"   {type(e).__name__}: {e}")

    status = orchestrator.get_status()
    print("\n=== Status ===")
    for agent in status.agents:
        print(f"   {agent.name:<14} {agent.state.value:<5} tasks={agent.total_tasks} avg={agent.avg_latency_ms}ms")
    print(f"   Metrics: {status.metrics.model_dump()}")

    await orchestrator.shutdown()


if __name__ == "__main__":
    config = get_config()
    configure_logging(config.log_level, config.json_logging)
    asyncio.run(demo_workflows())
