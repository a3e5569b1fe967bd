"""
Account Service - Account creation and API key authentication
=============================================================

Accounts are identified publicly by ``unique_id`` (used in webhook
URLs) and privately by an API key. Only the key's hash is stored.
"""

from typing import Any, Dict, List, Optional, Tuple

from core.database import Database
from core.exceptions import AuthenticationError, NotFoundError, ValidationError
from core.logging import get_logger
from core.security import generate_secure_token, generate_unique_id, hash_api_key

logger = get_logger("services.accounts")


def public_account(account: Dict[str, Any]) -> Dict[str, Any]:
    """Account document without its key hash."""
    return {k: v for k, v in account.items() if k != "api_key_hash"}


class AccountService:
    """
    Manages accounts and resolves API keys.

    Example:
        accounts = AccountService(db)
        account, api_key = accounts.create("owner@example.com", package="pro")
        assert accounts.authenticate(api_key)["id"] == account["id"]
    """

    def __init__(self, database: Database, auto_reply_default: bool = False):
        self.db = database
        self.auto_reply_default = auto_reply_default

    def create(
        self,
        email: str,
        package: Optional[str] = None,
        auto_reply_enabled: Optional[bool] = None
    ) -> Tuple[Dict[str, Any], str]:
        """
        Create an account.

        Args:
            email: Owner's email address
            package: Subscription package
            auto_reply_enabled: Initial toggle state (configured default if None)

        Returns:
            Tuple of (account, plain API key); the key is not stored

        Raises:
            ValidationError: If the email is invalid or already registered
        """
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValidationError(f"Invalid email: {email}")

        if self.db.get_account_by_email(email) is not None:
            raise ValidationError("Account already exists", {"email": email})

        if auto_reply_enabled is None:
            auto_reply_enabled = self.auto_reply_default

        api_key = generate_secure_token()
        account = self.db.create_account(
            email=email,
            unique_id=generate_unique_id(email),
            api_key_hash=hash_api_key(api_key),
            package=package,
            auto_reply_enabled=auto_reply_enabled,
        )
        return account, api_key

    def authenticate(self, api_key: Optional[str]) -> Dict[str, Any]:
        """
        Resolve an API key to its account.

        Raises:
            AuthenticationError: If the key is missing or unknown
        """
        if not api_key:
            raise AuthenticationError("Unauthorized")

        account = self.db.get_account_by_api_key_hash(hash_api_key(api_key))
        if account is None:
            logger.warning("Rejected unknown API key")
            raise AuthenticationError("Unauthorized")

        return account

    def get(self, unique_id: str) -> Dict[str, Any]:
        account = self.db.get_account_by_unique_id(unique_id)
        if account is None:
            raise NotFoundError("User not found", {"unique_id": unique_id})
        return account

    def list_accounts(self) -> List[Dict[str, Any]]:
        return [public_account(account) for account in self.db.list_accounts()]

    def set_package(self, unique_id: str, package: Optional[str]) -> Dict[str, Any]:
        account = self.get(unique_id)
        self.db.set_package(account["id"], package)
        logger.info(f"Package of {unique_id} set to {package}")
        return self.get(unique_id)
