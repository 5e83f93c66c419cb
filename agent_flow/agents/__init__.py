"""
Agent base class and default stub agents.
"""

from .base import BaseAgent
from .defaults import DEFAULT_AGENT_PROFILES, TemplateAgent, build_default_agents

__all__ = ['BaseAgent', 'DEFAULT_AGENT_PROFILES', 'TemplateAgent', 'build_default_agents']
