"""
Security Module - Access control and credential helpers
=======================================================

This module provides security-related functionality including:
- Pluggable authorization capability checks (admin access)
- Account API key generation and hashing
- Public account identifiers for webhook URLs
"""

import re
import hashlib
import secrets
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

from .exceptions import AuthorizationError
from .logging import get_logger

logger = get_logger("security")


class AccessPolicy(ABC):
    """
    Authorization capability check.

    The web layer receives an AccessPolicy at construction time and asks
    it whether an authenticated account may use admin features. Swap in
    a different implementation to back the check with an external
    identity provider.
    """

    @abstractmethod
    def is_admin(self, account: Optional[Dict[str, Any]]) -> bool:
        """Check whether the account holds the admin capability."""
        pass

    def require_admin(self, account: Optional[Dict[str, Any]]) -> None:
        """
        Raise AuthorizationError unless the account holds the admin capability.

        Args:
            account: Authenticated account document
        """
        if not self.is_admin(account):
            logger.warning(
                "Admin access denied",
                extra={"account": (account or {}).get("unique_id")}
            )
            raise AuthorizationError("You are not authorized to access this resource")


class ConfigAccessPolicy(AccessPolicy):
    """
    Access policy backed by the ``auth.admin_emails`` configuration list.

    Example:
        policy = ConfigAccessPolicy(config.auth.admin_emails)
        policy.require_admin(account)
    """

    def __init__(self, admin_emails: Iterable[str] = ()):
        self.admin_emails = {email.strip().lower() for email in admin_emails if email.strip()}

    def is_admin(self, account: Optional[Dict[str, Any]]) -> bool:
        if not account:
            return False
        email = (account.get("email") or "").lower()
        return email in self.admin_emails


def generate_secure_token(length: int = 32) -> str:
    """
    Generate a cryptographically secure random token.

    Args:
        length: Token length in bytes (output will be hex encoded)

    Returns:
        Hex-encoded secure token
    """
    return secrets.token_hex(length)


def hash_api_key(api_key: str) -> str:
    """
    Hash an API key for storage and lookup.

    Only the hash is persisted; the plain key is shown once on creation.
    """
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def generate_unique_id(email: str) -> str:
    """
    Build a public account identifier from an email address.

    The identifier is the slugged local part plus a short random suffix,
    e.g. ``jane-doe-3f9a1c``.
    """
    local_part = email.split("@", 1)[0].lower()
    slug = re.sub(r"[^a-z0-9]+", "-", local_part).strip("-") or "account"
    return f"{slug}-{secrets.token_hex(3)}"
