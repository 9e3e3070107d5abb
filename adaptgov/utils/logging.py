"""Logging configuration for adaptgov."""

import sys
from pathlib import Path
from typing import Any, Optional
from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[component]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    structured: bool = True,
    rotation: str = "1 week",
    retention: str = "90 days",
) -> None:
    """
    Configure the stderr sink and an optional audit file sink.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of the audit log
        structured: Write the audit log as JSON records
        rotation: Audit log rotation interval
        retention: Audit log retention (the signal horizon is 90 days)
    """
    logger.remove()
    logger.configure(extra={"component": "adaptgov"})

    # No variable values in tracebacks
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True, diagnose=False)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_file),
            format="{message}" if structured else CONSOLE_FORMAT,
            level=level,
            rotation=rotation,
            retention=retention,
            serialize=structured,
            diagnose=False,
        )

    logger.info(f"Logging configured with level={level}")


def setup_logging_from_config(config: Any, level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Configure logging from the ``logging`` section of a loaded config.

    Explicit ``level`` / ``log_file`` (e.g. from ``EnvSettings``) win over
    the file values.
    """
    section = config.get("logging", {}) if config is not None else {}
    setup_logging(
        level=level or section.get("level", "INFO"),
        log_file=log_file or section.get("log_file"),
        structured=section.get("structured", True),
        rotation=section.get("rotation", "1 week"),
        retention=section.get("retention", "90 days"),
    )


def get_logger(component: str):
    """Logger tagged with a component name, shown in the console format."""
    return logger.bind(component=component)
