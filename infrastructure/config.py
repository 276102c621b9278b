"""
CFGMATCH CONFIG - File-Backed Search Configuration

Configuration is loaded once from config/cfgmatch.toml and turned into the
typed values the core consumes (MatchConfig, LoggerConfig). Components never
read the TOML file themselves.

Usage:
    from infrastructure.config import load_toml_config, get_matcher_config

    config = load_toml_config()
    matcher_config = get_matcher_config(config)
    matcher = SubgraphMatcher(template, cfg, config=matcher_config)
"""
import logging
import tomllib
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

from core.schemas import MatchConfig
from infrastructure.logger import LoggerConfig

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "cfgmatch.toml"


# =============================================================================
# LOADING
# =============================================================================

def load_toml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from a TOML file.

    A missing or unreadable file is not fatal: a warning is emitted and an
    empty dict returned, so every section falls back to its defaults.

    Args:
        path: TOML file. None = config/cfgmatch.toml.

    Returns:
        Dict with all configuration sections
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        warnings.warn(f"Failed to load config from {config_path}: {e}")
        return {}


def _section(config_dict: Optional[Dict[str, Any]], name: str) -> Dict[str, Any]:
    if config_dict is None:
        config_dict = load_toml_config()
    section = config_dict.get(name, {})
    if not isinstance(section, dict):
        raise ValueError(f"[{name}] must be a table, got {type(section).__name__}")
    return section


# =============================================================================
# TYPED SECTIONS
# =============================================================================

def get_matcher_config(config_dict: Optional[Dict[str, Any]] = None) -> MatchConfig:
    """
    Build a MatchConfig from the [matcher] section.

    max_steps = 0 means unbounded.

    Raises:
        ValueError: If any value is invalid
    """
    section = _section(config_dict, "matcher")

    max_steps = section.get("max_steps", 0)
    if not isinstance(max_steps, int) or max_steps < 0:
        raise ValueError(f"matcher.max_steps must be a non-negative integer, got {max_steps!r}")

    config = MatchConfig(
        policy=section.get("policy", "all"),
        max_steps=max_steps or None,
        anchor_order=section.get("anchor_order", "index"),
        rpo_root=section.get("rpo_root"),
        strict_boundary=bool(section.get("strict_boundary", False)),
    )
    config.validate()
    return config


def get_parallel_workers(config_dict: Optional[Dict[str, Any]] = None) -> int:
    """Worker count for ParallelMatcher from the [parallel] section."""
    section = _section(config_dict, "parallel")
    workers = section.get("max_workers", 4)
    if not isinstance(workers, int) or workers < 1:
        raise ValueError(f"parallel.max_workers must be a positive integer, got {workers!r}")
    return workers


def get_logging_config(config_dict: Optional[Dict[str, Any]] = None) -> LoggerConfig:
    """Build a LoggerConfig from the [logging] section."""
    section = _section(config_dict, "logging")
    trace_path = section.get("trace_path") or None
    return LoggerConfig(
        buffer_size=int(section.get("trace_buffer_size", 10000)),
        trace_path=Path(trace_path) if trace_path else None,
    )


def configure_logging(config_dict: Optional[Dict[str, Any]] = None) -> None:
    """Apply [logging].level to the standard library loggers of this project."""
    section = _section(config_dict, "logging")
    level_name = str(section.get("level", "WARNING")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"logging.level is not a valid level name: {level_name!r}")
    for name in ("core", "infrastructure", "forge", "cfgmatch"):
        logging.getLogger(name).setLevel(level)
