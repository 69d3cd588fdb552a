#!/usr/bin/env python3
"""
Core Module for Microservices Architecture

Shared infrastructure components for the seasonal credit microservices.

COMPONENTS:
    - config_manager.py: Environment-driven service configuration and peer discovery
    - logger.py: Service logger setup
    - postgres_client.py: asyncpg-backed PostgreSQL client
    - service_client_base.py: Base class for httpx clients of peer services

USAGE:
    from core.config_manager import ConfigManager

    config = ConfigManager("seasonal_credit_service")
"""

from .config_manager import ConfigManager, Environment, ServiceConfig, create_config

__all__ = [
    "ConfigManager",
    "Environment",
    "ServiceConfig",
    "create_config",
]

__version__ = "2.1.0"
