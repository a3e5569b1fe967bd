"""
Rule Models - Auto-reply rule tables and evaluation results
===========================================================

Value types shared by the evaluator, the rule store and the web API:
- Rule: one row of an account's auto-reply table
- RuleSet: a named, ordered tactic
- InboundMessage: a normalized inbound message
- MatchResult: the outcome of evaluating a message against a RuleSet
"""

from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class MatchType(Enum):
    """Types of search term matching."""
    INCLUDES = "includes"       # Body contains the search term
    STARTS_WITH = "starts_with" # Body begins with the search term


# Alternate spellings accepted on input
MATCH_TYPE_ALIASES = {
    "includes": MatchType.INCLUDES,
    "contains": MatchType.INCLUDES,
    "starts_with": MatchType.STARTS_WITH,
    "starts with": MatchType.STARTS_WITH,
    "startswith": MatchType.STARTS_WITH,
}


def parse_match_type(value: Any) -> Union[MatchType, str]:
    """
    Normalize a persisted match type.

    Unrecognized values are returned unchanged so the evaluator can
    skip and report them.
    """
    if isinstance(value, MatchType):
        return value
    key = str(value).strip().lower() if value is not None else ""
    return MATCH_TYPE_ALIASES.get(key, "" if value is None else str(value))


class MatchReason(Enum):
    """Why an evaluation ended the way it did."""
    MATCHED = "matched"
    NO_MATCH = "no_match"
    EMPTY_RULE_SET = "empty_rule_set"


class WarningCode(Enum):
    """Data-quality problems found while evaluating a RuleSet."""
    EMPTY_SEARCH_TERM = "empty_search_term"
    UNKNOWN_MATCH_TYPE = "unknown_match_type"
    DELAY_BELOW_MINIMUM = "delay_below_minimum"


@dataclass(frozen=True)
class Rule:
    """
    A single auto-reply trigger.

    Attributes:
        match_type (MatchType | str): Comparison strategy, or the raw
            value when it is not recognized
        search_term (str): Text compared against the message body
        reply_text (str): Reply sent when the rule fires
        delay_seconds (int): Seconds to wait before replying
        platforms (tuple): Platform tags the rule applies to (empty = all)
    """
    match_type: Union[MatchType, str]
    search_term: str
    reply_text: str
    delay_seconds: int = 10
    platforms: Tuple[str, ...] = ()

    def applies_to(self, platform: str) -> bool:
        """Check platform applicability."""
        return not self.platforms or platform in self.platforms

    def to_dict(self) -> Dict[str, Any]:
        """Convert rule to its persisted row shape."""
        match_type = self.match_type.value if isinstance(self.match_type, MatchType) else self.match_type
        return {
            "type": match_type,
            "search_term": self.search_term,
            "message_to_send": self.reply_text,
            "delay": self.delay_seconds,
            "platforms": list(self.platforms),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rule":
        """Create rule from a persisted row."""
        platforms = data.get("platforms") or ()
        if isinstance(platforms, str):
            platforms = (platforms,)
        return cls(
            match_type=parse_match_type(data.get("type")),
            search_term=data.get("search_term") or "",
            reply_text=data.get("message_to_send") or "",
            delay_seconds=data.get("delay", 10),
            platforms=tuple(str(p) for p in platforms),
        )


@dataclass(frozen=True)
class RuleSet:
    """
    A named, ordered tactic. Order is evaluation order.
    """
    name: str
    rules: Tuple[Rule, ...] = ()

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "rows": [rule.to_dict() for rule in self.rules]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuleSet":
        return cls(
            name=data.get("name") or "",
            rules=tuple(Rule.from_dict(row) for row in data.get("rows") or []),
        )


@dataclass(frozen=True)
class InboundMessage:
    """
    An inbound message normalized for evaluation.

    Attributes:
        body (str): Message text (empty string allowed)
        platform (str): Source channel tag
        sender_phone (str): Sender's phone number
        timestamp (datetime): Provider send time in UTC, None when not supplied
        message_id (str): Provider message id, if any
        sender_name (str): Sender display name, if any
    """
    body: str
    platform: str
    sender_phone: str
    timestamp: Optional[datetime] = None
    message_id: Optional[str] = None
    sender_name: Optional[str] = None


@dataclass(frozen=True)
class RuleWarning:
    """A data-quality warning about one rule."""
    code: WarningCode
    index: int
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "index": self.index, "detail": self.detail}


@dataclass(frozen=True)
class MatchResult:
    """
    Result of evaluating a message against a RuleSet.

    Attributes:
        matched (bool): Whether any rule fired
        rule (Rule): The rule that fired
        index (int): Position of the rule in the RuleSet
        reason (MatchReason): Terminal outcome
        delay_seconds (int): Effective delay after the delay policy
        warnings (list): Rules skipped or adjusted during evaluation
    """
    matched: bool
    reason: MatchReason
    rule: Optional[Rule] = None
    index: Optional[int] = None
    delay_seconds: Optional[int] = None
    warnings: List[RuleWarning] = field(default_factory=list)

    @property
    def reply_text(self) -> Optional[str]:
        return self.rule.reply_text if self.rule else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched": self.matched,
            "reason": self.reason.value,
            "index": self.index,
            "rule": self.rule.to_dict() if self.rule else None,
            "delay_seconds": self.delay_seconds,
            "warnings": [w.to_dict() for w in self.warnings],
        }
