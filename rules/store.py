"""
Rule Store - Per-account tactic persistence
===========================================

Loads and saves an account's auto-reply tactics. Saves are full
replacements: a tactic's rows are always written as a whole, never
patched row by row.
"""

from typing import Iterable, List, Optional

from core.database import Database
from core.exceptions import NotFoundError, ValidationError
from core.logging import get_logger
from .models import RuleSet

logger = get_logger("rules.store")


class RuleStore:
    """
    Tactic storage backed by the application database.

    Example:
        store = RuleStore(db)
        store.save_rule_set(account_id, RuleSet("welcome", (rule,)))
        rule_set = store.load_rule_set(account_id)
    """

    def __init__(self, database: Database, min_delay_seconds: int = 10):
        """
        Initialize rule store.

        Args:
            database: Database instance
            min_delay_seconds: Smallest delay accepted on save
        """
        self.db = database
        self.min_delay_seconds = min_delay_seconds

    def _require_account(self, account_id: int) -> dict:
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError("Account not found", {"account_id": account_id})
        return account

    def load_tactics(self, account_id: int) -> List[RuleSet]:
        """Load all tactics of an account in saved order."""
        return [RuleSet.from_dict(doc) for doc in self.db.get_tactics(account_id)]

    def load_rule_set(self, account_id: int) -> RuleSet:
        """
        Load the account's effective RuleSet.

        The effective RuleSet is the active tactic, else the first
        tactic, else an empty RuleSet.
        """
        account = self._require_account(account_id)
        tactics = self.load_tactics(account_id)

        if not tactics:
            return RuleSet(name="")

        active = account.get("active_tactic")
        for tactic in tactics:
            if tactic.name == active:
                return tactic

        return tactics[0]

    def save_rule_set(self, account_id: int, rule_set: RuleSet) -> None:
        """
        Replace the tactic with the RuleSet's name, appending it if new.
        """
        account = self._require_account(account_id)
        tactics = self.load_tactics(account_id)

        for position, tactic in enumerate(tactics):
            if tactic.name == rule_set.name:
                tactics[position] = rule_set
                break
        else:
            tactics.append(rule_set)

        self.save_tactics(account_id, tactics, active=account.get("active_tactic"))

    def save_tactics(
        self,
        account_id: int,
        tactics: Iterable[RuleSet],
        active: Optional[str] = None
    ) -> None:
        """
        Replace all of an account's tactics.

        Args:
            account_id: Account ID
            tactics: Ordered tactics
            active: Name of the tactic to evaluate; must be one of the
                saved tactics

        Raises:
            ValidationError: On empty or duplicate names, invalid delays,
                or an unknown active tactic
        """
        self._require_account(account_id)
        tactics = list(tactics)
        self.validate(tactics)

        names = [tactic.name for tactic in tactics]
        if active is not None and active not in names:
            raise ValidationError(f"Active tactic '{active}' does not exist")

        self.db.replace_tactics(
            account_id,
            [(tactic.name, [rule.to_dict() for rule in tactic.rules]) for tactic in tactics],
            active_tactic=active,
        )

        logger.info(
            f"Saved {len(tactics)} tactic(s)",
            extra={"account_id": account_id, "active": active}
        )

    def validate(self, tactics: List[RuleSet]) -> None:
        """Check tactics before they are persisted."""
        seen = set()
        for tactic in tactics:
            name = tactic.name.strip() if tactic.name else ""
            if not name:
                raise ValidationError("Tactic name cannot be empty")
            if name in seen:
                raise ValidationError(f"Duplicate tactic name: {name}")
            seen.add(name)

            for index, rule in enumerate(tactic.rules):
                delay = rule.delay_seconds
                if not isinstance(delay, int) or isinstance(delay, bool) or delay < self.min_delay_seconds:
                    raise ValidationError(
                        f"Delay must be at least {self.min_delay_seconds} seconds",
                        {"tactic": name, "row": index, "delay": delay}
                    )
