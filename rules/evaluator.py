"""
Rule Evaluator - First-match-wins auto-reply rule evaluation
============================================================

Evaluates an inbound message against an ordered RuleSet. Evaluation
is pure: no I/O, no mutation, and no exceptions for malformed rules.
Problems with individual rules are reported as warnings alongside the
result.
"""

from typing import List, Optional

from core.config import DELAY_POLICIES
from .models import (
    InboundMessage,
    MatchReason,
    MatchResult,
    MatchType,
    Rule,
    RuleSet,
    RuleWarning,
    WarningCode,
)


class RuleEvaluator:
    """
    Configurable rule evaluator.

    Matching is case-sensitive by default. Rules whose delay is below
    ``min_delay_seconds`` are either clamped to the minimum (``clamp``)
    or skipped (``reject``).

    Example:
        evaluator = RuleEvaluator(case_sensitive=False)
        result = evaluator.evaluate(rule_set, message)
        if result.matched:
            print(result.rule.reply_text, result.delay_seconds)
    """

    def __init__(
        self,
        case_sensitive: bool = True,
        min_delay_seconds: int = 10,
        delay_policy: str = "clamp"
    ):
        if delay_policy not in DELAY_POLICIES:
            raise ValueError(f"Unknown delay policy: {delay_policy}")

        self.case_sensitive = case_sensitive
        self.min_delay_seconds = min_delay_seconds
        self.delay_policy = delay_policy

    def evaluate(self, rule_set: RuleSet, message: InboundMessage) -> MatchResult:
        """
        Find the first rule that fires for a message.

        Args:
            rule_set: Ordered rules to check
            message: Normalized inbound message

        Returns:
            MatchResult describing the first matching rule, if any
        """
        if not rule_set.rules:
            return MatchResult(matched=False, reason=MatchReason.EMPTY_RULE_SET)

        warnings: List[RuleWarning] = []
        body = self._normalize(message.body or "")

        for index, rule in enumerate(rule_set.rules):
            # Malformed rules are reported whatever platform they target
            if not isinstance(rule.match_type, MatchType):
                warnings.append(RuleWarning(
                    WarningCode.UNKNOWN_MATCH_TYPE, index, f"match type {rule.match_type!r}"
                ))
                continue

            if not rule.search_term:
                warnings.append(RuleWarning(WarningCode.EMPTY_SEARCH_TERM, index))
                continue

            if not rule.applies_to(message.platform) or not self._matches(rule, body):
                continue

            delay = self._effective_delay(rule, index, warnings)
            if delay is not None:
                return MatchResult(
                    matched=True,
                    reason=MatchReason.MATCHED,
                    rule=rule,
                    index=index,
                    delay_seconds=delay,
                    warnings=warnings,
                )

        return MatchResult(matched=False, reason=MatchReason.NO_MATCH, warnings=warnings)

    def _normalize(self, text: str) -> str:
        return text if self.case_sensitive else text.casefold()

    def _matches(self, rule: Rule, body: str) -> bool:
        term = self._normalize(rule.search_term)

        if rule.match_type is MatchType.INCLUDES:
            return term in body

        if rule.match_type is MatchType.STARTS_WITH:
            return body.startswith(term)

        return False

    def _effective_delay(
        self,
        rule: Rule,
        index: int,
        warnings: List[RuleWarning]
    ) -> Optional[int]:
        """
        Apply the delay policy to a rule.

        Returns:
            Delay to use, or None when the rule must be skipped
        """
        delay = rule.delay_seconds
        valid = isinstance(delay, int) and not isinstance(delay, bool)

        if valid and delay >= self.min_delay_seconds:
            return delay

        warnings.append(RuleWarning(
            WarningCode.DELAY_BELOW_MINIMUM, index, f"delay {delay!r}, minimum {self.min_delay_seconds}"
        ))

        if self.delay_policy == "reject":
            return None

        return self.min_delay_seconds


_default_evaluator = RuleEvaluator()


def evaluate(rule_set: RuleSet, message: InboundMessage) -> MatchResult:
    """
    Evaluate a message with the default settings.

    Case-sensitive matching, 10 second minimum delay, clamp policy.
    """
    return _default_evaluator.evaluate(rule_set, message)
