"""
Core Module - Foundation components for WhatsApp Lead Agent
===========================================================

This module provides the foundational components including:
- Configuration management
- Database operations
- Logging setup
- Exception handling
- Access control and credential helpers
"""

from .config import Config, load_config, save_config
from .database import Database, init_database
from .exceptions import (
    LeadAgentError,
    ConfigError,
    DatabaseError,
    ValidationError,
    NotFoundError,
    AuthenticationError,
    AuthorizationError,
    WhatsAppError,
    SchedulerError,
    ServiceUnavailableError,
)
from .logging import setup_logging, get_logger
from .security import AccessPolicy, ConfigAccessPolicy

__all__ = [
    "Config",
    "load_config",
    "save_config",
    "Database",
    "init_database",
    "LeadAgentError",
    "ConfigError",
    "DatabaseError",
    "ValidationError",
    "NotFoundError",
    "AuthenticationError",
    "AuthorizationError",
    "WhatsAppError",
    "SchedulerError",
    "ServiceUnavailableError",
    "setup_logging",
    "get_logger",
    "AccessPolicy",
    "ConfigAccessPolicy",
]
