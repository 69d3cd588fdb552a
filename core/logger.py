#!/usr/bin/env python3
"""Service logger setup"""
import logging
import sys
from typing import Optional

from core.config.logging_config import LoggingConfig


def setup_service_logger(service_name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Configure root logging for a service and return the service logger.

    Args:
        service_name: Logger name, also used as the service identity
        level: Log level override (defaults to LoggingConfig.log_level)

    Returns:
        Configured logger
    """
    logging_config = LoggingConfig.from_env()
    log_level = (level or logging_config.log_level).upper()

    handlers = []
    if logging_config.enable_console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if logging_config.log_file:
        handlers.append(logging.FileHandler(logging_config.log_file))

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format=logging_config.log_format,
        handlers=handlers or None,
        force=True,
    )

    for noisy in ("httpx", "httpcore", "asyncpg", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging_config.library_log_level)

    logger = logging.getLogger(service_name)
    logger.info(f"Logger initialized for {service_name} (level={log_level}, env={logging_config.environment})")
    return logger


__all__ = ["setup_service_logger"]
