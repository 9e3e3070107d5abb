"""Utility modules for adaptgov."""

from adaptgov.utils.logging import setup_logging, setup_logging_from_config, get_logger
from adaptgov.utils.config import (
    load_config,
    save_config,
    get_config_hash,
    governance_config_from,
    load_env_settings,
    GovernanceConfig,
    EnvSettings,
)

__all__ = [
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    "load_config",
    "save_config",
    "get_config_hash",
    "governance_config_from",
    "load_env_settings",
    "GovernanceConfig",
    "EnvSettings",
]
