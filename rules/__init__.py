"""
Rules Module - Keyword-matched auto-reply rules
===============================================

This module provides the auto-reply rule system:
- Rule tables grouped into named tactics
- First-match-wins evaluation with platform scoping
- Per-account tactic storage
"""

from .models import (
    MatchType,
    MatchReason,
    WarningCode,
    Rule,
    RuleSet,
    InboundMessage,
    MatchResult,
    RuleWarning,
)
from .evaluator import RuleEvaluator, evaluate
from .store import RuleStore

__all__ = [
    "MatchType",
    "MatchReason",
    "WarningCode",
    "Rule",
    "RuleSet",
    "InboundMessage",
    "MatchResult",
    "RuleWarning",
    "RuleEvaluator",
    "evaluate",
    "RuleStore",
]
