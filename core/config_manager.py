#!/usr/bin/env python3
"""
Configuration Manager

Centralized, environment-driven configuration for microservices.

USAGE:
    from core.config_manager import ConfigManager

    config_manager = ConfigManager("seasonal_credit_service")
    config = config_manager.get_service_config()

    host, port = config_manager.discover_service(
        service_name="notification_service",
        default_host="localhost",
        default_port=8206,
        env_host_key="NOTIFICATION_SERVICE_HOST",
        env_port_key="NOTIFICATION_SERVICE_PORT",
    )
"""
import logging
import os
from dataclasses import dataclass, fields
from enum import Enum
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _bool(val: str) -> bool:
    return val.lower() == "true"


def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


class Environment(str, Enum):
    """Deployment environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


ENV_FILES = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}


@dataclass
class ServiceConfig:
    """Runtime configuration for a single service"""
    service_name: str
    environment: str = "development"
    service_port: int = 8240
    debug: bool = False
    log_level: str = "INFO"

    # PostgreSQL (native asyncpg)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "postgres"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_min_pool: int = 1
    postgres_max_pool: int = 10

    # Distribution
    distribution_concurrency: int = 10

    # Expiry processing
    expiry_sweep_enabled: bool = False
    expiry_sweep_cron_hour: int = 0
    expiry_warning_days: int = 7
    warning_cooldown_hours: int = 0

    @classmethod
    def from_env(cls, service_name: str) -> 'ServiceConfig':
        """Load service config from environment variables"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            service_name=service_name,
            environment=env,
            service_port=_int(os.getenv("SERVICE_PORT", "8240"), 8240),
            debug=_bool(os.getenv("DEBUG", "false")),
            log_level=os.getenv("LOG_LEVEL", "DEBUG" if env == "development" else "INFO"),
            postgres_host=os.getenv("POSTGRES_HOST", "localhost"),
            postgres_port=_int(os.getenv("POSTGRES_PORT", "5432"), 5432),
            postgres_db=os.getenv("POSTGRES_DB", "postgres"),
            postgres_user=os.getenv("POSTGRES_USER", "postgres"),
            postgres_password=os.getenv("POSTGRES_PASSWORD", "postgres"),
            postgres_min_pool=_int(os.getenv("POSTGRES_MIN_POOL", "1"), 1),
            postgres_max_pool=_int(os.getenv("POSTGRES_MAX_POOL", "10"), 10),
            distribution_concurrency=_int(os.getenv("DISTRIBUTION_CONCURRENCY", "10"), 10),
            expiry_sweep_enabled=_bool(os.getenv("EXPIRY_SWEEP_ENABLED", "false")),
            expiry_sweep_cron_hour=_int(os.getenv("EXPIRY_SWEEP_CRON_HOUR", "0"), 0),
            expiry_warning_days=_int(os.getenv("EXPIRY_WARNING_DAYS", "7"), 7),
            warning_cooldown_hours=_int(os.getenv("WARNING_COOLDOWN_HOURS", "0"), 0),
        )


class ConfigManager:
    """Loads environment configuration for one service"""

    def __init__(self, service_name: str, env_file: Optional[str] = None):
        self.service_name = service_name
        self.environment = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")

        env_file = env_file or ENV_FILES.get(self.environment, ENV_FILES["development"])
        load_dotenv(env_file, override=False)

        self._service_config: Optional[ServiceConfig] = None

    def get_service_config(self) -> ServiceConfig:
        """Get (cached) service configuration"""
        if self._service_config is None:
            self._service_config = ServiceConfig.from_env(self.service_name)
        return self._service_config

    def discover_service(
        self,
        service_name: str,
        default_host: str = "localhost",
        default_port: int = 8000,
        env_host_key: Optional[str] = None,
        env_port_key: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Resolve host and port of a peer service.

        Priority: explicit environment keys → <SERVICE_NAME>_HOST/_PORT → defaults

        Returns:
            (host, port) tuple
        """
        prefix = service_name.upper()
        host = (
            (os.getenv(env_host_key) if env_host_key else None)
            or os.getenv(f"{prefix}_HOST")
            or default_host
        )
        port_value = (
            (os.getenv(env_port_key) if env_port_key else None)
            or os.getenv(f"{prefix}_PORT")
            or ""
        )
        port = _int(port_value, default_port)

        logger.debug(f"Resolved {service_name} for {self.service_name}: {host}:{port}")
        return host, port

    def print_config_summary(self, show_secrets: bool = False):
        """Log the effective configuration"""
        config = self.get_service_config()
        logger.info(f"Configuration for {self.service_name} ({self.environment}):")
        for field in fields(config):
            value = getattr(config, field.name)
            if "password" in field.name and not show_secrets:
                value = "***"
            logger.info(f"  {field.name} = {value}")


def create_config(service_name: str) -> ServiceConfig:
    """Shortcut for ConfigManager(service_name).get_service_config()"""
    return ConfigManager(service_name).get_service_config()


__all__ = ["ConfigManager", "Environment", "ServiceConfig", "create_config"]
