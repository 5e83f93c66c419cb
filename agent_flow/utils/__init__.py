"""
Shared utilities: logging and configuration.
"""

from .config import OrchestrationConfig, SystemConfig, get_config, set_config
from .logging import LoggerMixin, configure_logging, get_logger

__all__ = [
    'OrchestrationConfig',
    'SystemConfig',
    'get_config',
    'set_config',
    'LoggerMixin',
    'configure_logging',
    'get_logger',
]
