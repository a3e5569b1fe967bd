"""
Lead Service - Lead capture from form webhooks
==============================================

Normalizes lead submissions (e.g. WPForms posts) and appends them to
an account's lead set. A lead is identified by phone number and
source; re-submitting the same lead is a no-op.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from core.database import Database
from core.exceptions import NotFoundError, ValidationError
from core.logging import get_logger, mask_phone

logger = get_logger("services.leads")


@dataclass
class LeadResult:
    """Outcome of a lead registration."""
    name: Optional[str]
    phone_number: str
    source: str
    added: bool

    @property
    def message(self) -> str:
        return f"Lead from {self.source} added"


class LeadService:
    """
    Registers leads against accounts.

    Example:
        leads = LeadService(db)
        leads.register("acme-1a2b3c", {"your_name": "Jo", "phone_number": "+155501"}, "wpforms")
    """

    def __init__(self, database: Database, default_source: str = "other"):
        self.db = database
        self.default_source = default_source

    def register(
        self,
        unique_id: str,
        payload: Dict[str, Any],
        source: Optional[str] = None
    ) -> LeadResult:
        """
        Add a lead to an account's lead set.

        Args:
            unique_id: Account's public identifier
            payload: Submitted form fields; the name is read from
                ``name`` or ``your_name``
            source: Lead source tag (defaults to the configured source)

        Returns:
            LeadResult, with ``added=False`` for a repeat submission

        Raises:
            NotFoundError: If the account does not exist
            ValidationError: If no phone number was submitted
        """
        account = self.db.get_account_by_unique_id(unique_id)
        if account is None:
            raise NotFoundError("User not found", {"unique_id": unique_id})

        phone_number = str(payload.get("phone_number") or "").strip()
        if not phone_number:
            raise ValidationError("phone_number is required")

        name = payload.get("name") or payload.get("your_name")
        source = source or self.default_source

        added = self.db.add_lead(account["id"], name, phone_number, source)

        if added:
            logger.info(f"Lead {mask_phone(phone_number)} added", extra={"source": source})
        else:
            logger.debug(f"Lead {mask_phone(phone_number)} already registered", extra={"source": source})

        return LeadResult(name=name, phone_number=phone_number, source=source, added=added)

    def list_leads(self, account_id: int, source: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.db.get_leads(account_id, source)
