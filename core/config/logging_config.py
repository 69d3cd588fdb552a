#!/usr/bin/env python3
"""Logging configuration for seasonal credit services"""
import os
from dataclasses import dataclass

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class LoggingConfig:
    """Where and how service logs are written"""
    log_level: str = "INFO"
    log_format: str = DEFAULT_LOG_FORMAT
    log_file: str = ""
    enable_console: bool = True
    # Noisy third-party loggers are held at this level
    library_log_level: str = "WARNING"
    environment: str = "development"

    @classmethod
    def from_env(cls) -> 'LoggingConfig':
        """LOG_LEVEL, LOG_FORMAT, LOG_FILE, LOG_CONSOLE, LIBRARY_LOG_LEVEL"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            log_level=os.getenv("LOG_LEVEL", "DEBUG" if env == "development" else "INFO"),
            log_format=os.getenv("LOG_FORMAT", DEFAULT_LOG_FORMAT),
            log_file=os.getenv("LOG_FILE", ""),
            enable_console=os.getenv("LOG_CONSOLE", "true").lower() == "true",
            library_log_level=os.getenv("LIBRARY_LOG_LEVEL", "WARNING").upper(),
            environment=env,
        )
