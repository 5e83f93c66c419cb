"""
Default stub agents used to pre-populate an orchestrator.

The stubs return deterministic template payloads so that workflows can be
exercised end to end before real LLM- or tool-backed agents are plugged in.
"""

import time
from typing import Any, Callable, Dict, List, Optional

from .base import BaseAgent
from ..models.core import AgentRole, TaskView


def _architect(task: TaskView) -> Dict[str, Any]:
    return {"plan": f"Architecture plan for: {task.title}", "sub_tasks": []}


def _engineer(task: TaskView) -> Dict[str, Any]:
    return {"code": f"Implementation for: {task.title}", "status": "complete"}


def _analyst(task: TaskView) -> Dict[str, Any]:
    return {"analysis": f"Analysis of: {task.title}", "metrics": {}}


def _security(task: TaskView) -> Dict[str, Any]:
    return {"audit_result": f"Security review for: {task.title}", "vulnerabilities": []}


def _reviewer(task: TaskView) -> Dict[str, Any]:
    return {"review": f"QA review for: {task.title}", "approved": True}


def _synthesizer(task: TaskView) -> Dict[str, Any]:
    return {"synthesis": f"Synthesized output for: {task.title}", "sources": sorted(task.input)}


class TemplateAgent(BaseAgent):
    """Agent whose result is produced by a template function."""

    def __init__(self, template: Callable[[TaskView], Dict[str, Any]], **kwargs):
        super().__init__(**kwargs)
        self._template = template

    async def execute(self, task: TaskView) -> Dict[str, Any]:
        result = self._template(task)
        result["timestamp"] = time.time()
        return result


DEFAULT_AGENT_PROFILES: List[Dict[str, Any]] = [
    {
        "role": AgentRole.ARCHITECT,
        "name": "Architect",
        "capabilities": ["system-design", "decomposition", "planning"],
        "template": _architect,
    },
    {
        "role": AgentRole.ENGINEER,
        "name": "Engineer",
        "capabilities": ["implementation", "coding", "integration"],
        "max_concurrency": 3,
        "template": _engineer,
    },
    {
        "role": AgentRole.ANALYST,
        "name": "Analyst",
        "capabilities": ["analysis", "optimization", "metrics"],
        "template": _analyst,
    },
    {
        "role": AgentRole.SECURITY,
        "name": "Security",
        "capabilities": ["audit", "hardening", "compliance"],
        "template": _security,
    },
    {
        "role": AgentRole.REVIEWER,
        "name": "Reviewer",
        "capabilities": ["review", "qa", "testing"],
        "template": _reviewer,
    },
    {
        "role": AgentRole.SYNTHESIZER,
        "name": "Synthesizer",
        "capabilities": ["synthesis", "merging", "summarization"],
        "template": _synthesizer,
    },
]


def build_default_agents(profiles: Optional[List[Dict[str, Any]]] = None) -> List[TemplateAgent]:
    """Instantiate one TemplateAgent per profile."""
    agents = []
    for profile in profiles or DEFAULT_AGENT_PROFILES:
        agents.append(TemplateAgent(
            template=profile["template"],
            name=profile["name"],
            role=profile["role"],
            capabilities=profile.get("capabilities", []),
            max_concurrency=profile.get("max_concurrency", 1),
        ))
    return agents
