"""
Base agent class for class-based Agent Flow workers.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ..models.core import RoleLike, TaskView, resolve_role, role_name
from ..utils.logging import get_logger


class BaseAgent(ABC):
    """
    Abstract base class for agents that are registered as objects rather
    than plain callables.

    Subclasses set ``role`` (and optionally ``capabilities`` and
    ``max_concurrency``) and implement ``execute``.
    """

    role: RoleLike = ""
    capabilities: List[str] = []
    max_concurrency: int = 1

    def __init__(
        self,
        name: Optional[str] = None,
        role: Optional[RoleLike] = None,
        capabilities: Optional[List[str]] = None,
        max_concurrency: Optional[int] = None
    ):
        if role is not None:
            self.role = role
        self.role = resolve_role(self.role)
        self.name = name or f"{role_name(self.role)}-agent"
        if capabilities is not None:
            self.capabilities = list(capabilities)
        else:
            self.capabilities = list(self.capabilities)
        if max_concurrency is not None:
            self.max_concurrency = max_concurrency
        self.logger = get_logger(f"agent_flow.agents.{self.name}")

    @abstractmethod
    async def execute(self, task: TaskView) -> Any:
        """
        Execute one task.

        Args:
            task: Public view of the task being executed

        Returns:
            Any: Opaque result payload stored on the task record
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, role={self.role!r})"
