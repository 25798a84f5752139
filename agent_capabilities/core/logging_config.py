"""
Logging Configuration Module.

This module provides centralized logging configuration for agent-capabilities.
The package itself only creates module loggers; hosts that want console or file
output call ``setup_logging`` once at startup.

Features:
- Configurable log levels per module
- Console and file logging
- Simple, detailed and JSON line formats
"""

import logging
import os
from pathlib import Path
from typing import Optional


def _get_logging_config():
    """Get logging configuration from settings model.

    Settings are imported lazily so importing this module never reads the
    environment or the .env file as a side effect.
    """
    try:
        from agent_capabilities.core.config import get_settings

        settings = get_settings()
        return {
            "log_level": settings.log_level.upper(),
            "log_format": settings.log_format,
            "log_file_dir": settings.log_file_dir,
            "enable_file_logging": settings.enable_file_logging,
        }
    except Exception:
        # Fallback to environment variables if settings cannot be loaded
        return {
            "log_level": os.getenv("AGENT_CAPABILITIES_LOG_LEVEL", "INFO").upper(),
            "log_format": os.getenv("AGENT_CAPABILITIES_LOG_FORMAT", "detailed"),
            "log_file_dir": os.getenv("AGENT_CAPABILITIES_LOG_FILE_DIR", "logs"),
            "enable_file_logging": os.getenv("AGENT_CAPABILITIES_ENABLE_FILE_LOGGING", "false").lower()
            in ("true", "1", "yes"),
        }


# Define log formats
SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"module": "%(filename)s", "function": "%(funcName)s", "line": %(lineno)d, '
    '"message": "%(message)s"}'
)

LOG_FILE_NAME = "agent_capabilities.log"

# Module-specific log levels
MODULE_LOG_LEVELS = {
    "agent_capabilities": "INFO",
    "agent_capabilities.capabilities.resolver": "INFO",
    "agent_capabilities.capabilities.storage": "INFO",
    "agent_capabilities.capabilities.enforcer": "INFO",
    # Third-party libraries (reduce noise)
    "pydantic": "WARNING",
}


def _format_for(fmt: str) -> str:
    if fmt == "json":
        return JSON_FORMAT
    if fmt == "simple":
        return SIMPLE_FORMAT
    return DETAILED_FORMAT


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_file: Optional[bool] = None,
) -> None:
    """
    Configure logging for the host application.

    Args:
        log_level: Override configured log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Override configured format (simple, detailed, json)
        enable_file: Override whether file logging is enabled
    """
    config = _get_logging_config()
    level = (log_level or config["log_level"]).upper()
    fmt = log_format or config["log_format"]
    file_logging = config["enable_file_logging"] if enable_file is None else enable_file

    formatter = logging.Formatter(_format_for(fmt), datefmt="%Y-%m-%d %H:%M:%S")

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all levels, filter at handler level

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_logging:
        log_dir = Path(config["log_file_dir"])
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME)
        file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)

    root_logger.info(f"Logging configured: level={level}, format={fmt}, file_logging={file_logging}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The module name (typically __name__)

    Returns:
        A logger instance
    """
    return logging.getLogger(name)
