"""
CFGMATCH INFRASTRUCTURE - Ambient Modules

This package contains infrastructure components:
- config: TOML configuration loading into typed search settings
- logger: Search trace events (ring buffer + optional JSONL file)
"""

from infrastructure.logger import (
    SearchLogger,
    SearchEvent,
    LoggerConfig,
    get_logger,
    configure_logger,
    reset_logger,
)
from infrastructure.config import (
    load_toml_config,
    get_matcher_config,
    get_logging_config,
    get_parallel_workers,
    configure_logging,
)

__all__ = [
    "SearchLogger",
    "SearchEvent",
    "LoggerConfig",
    "get_logger",
    "configure_logger",
    "reset_logger",
    "load_toml_config",
    "get_matcher_config",
    "get_logging_config",
    "get_parallel_workers",
    "configure_logging",
]
