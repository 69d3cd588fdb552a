#!/usr/bin/env python3
"""Modular configuration for seasonal credit services

Configuration hierarchy:
- config_manager (core.config_manager): per-service runtime settings
- logging_config: Logging configuration
"""
from .logging_config import LoggingConfig

__all__ = [
    'LoggingConfig',
]
