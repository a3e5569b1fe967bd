"""
Exception Definitions - Custom exceptions for WhatsApp Lead Agent
=================================================================

This module defines all custom exceptions used throughout the application,
providing clear error handling and meaningful error messages.
"""

from typing import Any, Dict, Optional


class LeadAgentError(Exception):
    """
    Base exception for all Lead Agent errors.

    All custom exceptions in this application inherit from this base class,
    allowing for easy catching of all application-specific errors.

    Attributes:
        message (str): Human-readable error description
        details (dict): Additional error details for debugging
    """

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            details: Optional dictionary with additional error context
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return formatted error message with details if present."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(LeadAgentError):
    """
    Configuration-related errors.

    Raised when there are issues with:
    - Invalid configuration values
    - Missing provider credentials
    - Configuration parsing errors
    """
    pass


class DatabaseError(LeadAgentError):
    """
    Database operation errors.

    Raised when there are issues with:
    - Database connection failures
    - Query execution errors
    - Data integrity violations
    """
    pass


class ValidationError(LeadAgentError):
    """
    Input validation errors.

    Raised when user-supplied data is rejected at input time:
    - Missing required campaign or lead fields
    - Auto-reply rows with a delay under the minimum
    - Duplicate or empty tactic names
    """
    pass


class NotFoundError(LeadAgentError):
    """Raised when an account, campaign or tactic does not exist."""
    pass


class AuthenticationError(LeadAgentError):
    """Raised when a request carries no valid API key."""
    pass


class AuthorizationError(LeadAgentError):
    """Raised when an authenticated account lacks a required capability."""
    pass


class WhatsAppError(LeadAgentError):
    """
    WhatsApp Business API errors.

    Raised when the provider rejects a request or cannot be reached.
    The message is the provider's own error message when one is returned.

    Attributes:
        status_code (int): HTTP status returned by the provider, if any
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize provider error.

        Args:
            message: Provider error message
            status_code: HTTP status code of the failed call
            details: Optional dictionary with the provider payload
        """
        self.status_code = status_code
        super().__init__(message, details)


class SchedulerError(LeadAgentError):
    """Raised when a delayed reply cannot be scheduled."""
    pass


class ServiceUnavailableError(LeadAgentError):
    """Raised when a feature needs a provider that is not configured."""
    pass
