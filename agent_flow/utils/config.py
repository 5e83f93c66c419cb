"""
Configuration management for Agent Flow.
"""

import json
import os
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ValidationError, field_validator
from pathlib import Path

from ..models.core import Strategy
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("agent_flow.json")


class OrchestrationConfig(BaseModel):
    """Constructor-time options for an orchestrator."""
    task_timeout_seconds: float = Field(default=300.0, gt=0)
    default_strategy: Strategy = Strategy.PARALLEL
    deregister_poll_interval_seconds: float = Field(default=0.25, gt=0)
    consensus_max_replicas: int = Field(default=5, ge=1)
    skip_blocked_tasks: bool = False
    cancel_on_timeout: bool = False


class SystemConfig(BaseModel):
    """Main system configuration."""
    log_level: str = Field(default="INFO")
    json_logging: bool = Field(default=False)
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)

    @field_validator('log_level')
    @classmethod
    def known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


def _env_flag(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env() -> Dict[str, Any]:
    """
    Collect configuration overrides from environment variables.

    Returns:
        Dict[str, Any]: Only the settings that are present in the environment
    """
    config_data: Dict[str, Any] = {}

    if os.getenv("AGENT_FLOW_LOG_LEVEL"):
        config_data["log_level"] = os.getenv("AGENT_FLOW_LOG_LEVEL")

    json_logging = _env_flag("AGENT_FLOW_JSON_LOGGING")
    if json_logging is not None:
        config_data["json_logging"] = json_logging

    orchestration: Dict[str, Any] = {}
    if os.getenv("AGENT_FLOW_TASK_TIMEOUT"):
        orchestration["task_timeout_seconds"] = float(os.getenv("AGENT_FLOW_TASK_TIMEOUT"))

    if os.getenv("AGENT_FLOW_DEFAULT_STRATEGY"):
        orchestration["default_strategy"] = os.getenv("AGENT_FLOW_DEFAULT_STRATEGY")

    if os.getenv("AGENT_FLOW_CONSENSUS_MAX_REPLICAS"):
        orchestration["consensus_max_replicas"] = int(os.getenv("AGENT_FLOW_CONSENSUS_MAX_REPLICAS"))

    skip_blocked = _env_flag("AGENT_FLOW_SKIP_BLOCKED_TASKS")
    if skip_blocked is not None:
        orchestration["skip_blocked_tasks"] = skip_blocked

    cancel_on_timeout = _env_flag("AGENT_FLOW_CANCEL_ON_TIMEOUT")
    if cancel_on_timeout is not None:
        orchestration["cancel_on_timeout"] = cancel_on_timeout

    if orchestration:
        config_data["orchestration"] = orchestration

    return config_data


def load_config_from_file(config_path: Optional[Path] = None) -> SystemConfig:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to configuration file

    Returns:
        SystemConfig: Configuration object, defaults if the file is missing or invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return SystemConfig()

    try:
        with open(config_path, 'r') as f:
            config_data = json.load(f)
        return SystemConfig(**config_data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Could not load config from {config_path}: {e}")
        return SystemConfig()


def merge_config(base: SystemConfig, overrides: Dict[str, Any]) -> SystemConfig:
    """Apply override values on top of a base configuration."""
    merged = base.model_dump()
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return SystemConfig(**merged)


# Global configuration instance
_config: Optional[SystemConfig] = None


def get_config() -> SystemConfig:
    """
    Get the global configuration instance.

    Returns:
        SystemConfig: Global configuration
    """
    global _config
    if _config is None:
        # File first, then environment overrides
        _config = merge_config(load_config_from_file(), load_config_from_env())

    return _config


def set_config(config: Optional[SystemConfig]) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Configuration to set as global, or None to reload on next access
    """
    global _config
    _config = config
