"""
Test Rules Module
=================

Unit tests for rule models and the first-match-wins evaluator.
"""

import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from rules.models import (
    InboundMessage, MatchReason, MatchType, Rule, RuleSet, WarningCode, parse_match_type
)
from rules.evaluator import RuleEvaluator, evaluate


def msg(body, platform="wpforms"):
    return InboundMessage(body=body, platform=platform, sender_phone="+15550001111")


def rule(match_type=MatchType.INCLUDES, term="Hi", reply="Hello!", delay=10, platforms=()):
    return Rule(match_type, term, reply, delay, tuple(platforms))


class TestRuleModel:
    """Tests for Rule and RuleSet value types."""

    def test_from_dict_editor_row(self):
        """Test rows saved by the editing surface are parsed."""
        r = Rule.from_dict({
            "type": "starts with",
            "search_term": "Hi",
            "message_to_send": "Hello, how can I help you today?",
            "delay": 5,
            "platforms": ["wpforms"],
        })

        assert r.match_type is MatchType.STARTS_WITH
        assert r.reply_text == "Hello, how can I help you today?"
        assert r.delay_seconds == 5
        assert r.platforms == ("wpforms",)

    def test_to_dict_uses_persisted_names(self):
        """Test rules serialize to persisted row keys."""
        data = rule(platforms=["webchat"]).to_dict()
        assert data == {
            "type": "includes",
            "search_term": "Hi",
            "message_to_send": "Hello!",
            "delay": 10,
            "platforms": ["webchat"],
        }

    def test_match_type_aliases(self):
        """Test accepted match type spellings."""
        assert parse_match_type("contains") is MatchType.INCLUDES
        assert parse_match_type("startswith") is MatchType.STARTS_WITH
        assert parse_match_type("Starts With") is MatchType.STARTS_WITH

    def test_unknown_match_type_preserved(self):
        """Test unknown match types survive a round trip unchanged."""
        r = Rule.from_dict({"type": "regex", "search_term": "x", "message_to_send": "y", "delay": 10})
        assert r.match_type == "regex"
        assert r.to_dict()["type"] == "regex"

    def test_rule_set_from_dict(self):
        rule_set = RuleSet.from_dict({"name": "test", "rows": [rule().to_dict(), rule(term="Bye").to_dict()]})
        assert rule_set.name == "test"
        assert [r.search_term for r in rule_set] == ["Hi", "Bye"]


class TestEvaluator:
    """Tests for rule evaluation."""

    def test_empty_rule_set(self):
        """Test an empty RuleSet never matches."""
        result = evaluate(RuleSet("empty"), msg("Hi"))
        assert result.matched is False
        assert result.reason is MatchReason.EMPTY_RULE_SET
        assert result.rule is None

    def test_includes(self):
        """Test substring matching."""
        rule_set = RuleSet("t", (rule(MatchType.INCLUDES, "Hi"),))

        assert evaluate(rule_set, msg("Well Hi there")).matched
        assert evaluate(rule_set, msg("Hi")).matched
        assert not evaluate(rule_set, msg("H i")).matched

    def test_starts_with(self):
        """Test prefix matching."""
        rule_set = RuleSet("t", (rule(MatchType.STARTS_WITH, "Hi"),))

        assert evaluate(rule_set, msg("Hi there")).matched
        assert not evaluate(rule_set, msg("Well Hi")).matched

    def test_first_match_wins(self):
        """Test the earliest matching rule is returned."""
        rules = tuple(rule(term="x", reply=f"filler {i}") for i in range(5)) + (
            rule(term="Hi", reply="first"),
            rule(MatchType.STARTS_WITH, "Hi", reply="second"),
        )
        result = evaluate(RuleSet("t", rules), msg("Hi there"))

        assert result.matched
        assert result.index == 5
        assert result.reply_text == "first"

    def test_platform_filtering(self):
        """Test platform-scoped rules only fire on their platforms."""
        rule_set = RuleSet("t", (rule(platforms=["wpforms"]),))

        assert not evaluate(rule_set, msg("Hi", platform="webchat")).matched
        assert evaluate(rule_set, msg("Hi", platform="wpforms")).matched

    def test_empty_platforms_apply_everywhere(self):
        rule_set = RuleSet("t", (rule(platforms=()),))
        assert evaluate(rule_set, msg("Hi", platform="anything")).matched

    def test_case_sensitive_by_default(self):
        """Test default comparison is case-sensitive."""
        rule_set = RuleSet("t", (rule(term="Hi"),))
        assert not evaluate(rule_set, msg("hi there")).matched

    def test_case_insensitive_option(self):
        """Test case-insensitive comparison when configured."""
        rule_set = RuleSet("t", (rule(MatchType.STARTS_WITH, "Hi"),))
        result = RuleEvaluator(case_sensitive=False).evaluate(rule_set, msg("hi there"))
        assert result.matched

    def test_unknown_match_type_skipped(self):
        """Test malformed rules are skipped with a warning."""
        rule_set = RuleSet("t", (
            Rule("unknown", "Hi", "never", 10),
            rule(term="Hi", reply="valid"),
        ))
        result = evaluate(rule_set, msg("Hi"))

        assert result.matched
        assert result.index == 1
        assert result.reply_text == "valid"
        assert [w.code for w in result.warnings] == [WarningCode.UNKNOWN_MATCH_TYPE]
        assert result.warnings[0].index == 0

    def test_empty_search_term_never_matches(self):
        """Test empty search terms never fire."""
        result = evaluate(RuleSet("t", (rule(term=""),)), msg("anything"))

        assert result.matched is False
        assert result.reason is MatchReason.NO_MATCH
        assert result.warnings[0].code is WarningCode.EMPTY_SEARCH_TERM

    def test_delay_clamped(self):
        """Test delays under the minimum are clamped by default."""
        result = evaluate(RuleSet("t", (rule(delay=5),)), msg("Hi"))

        assert result.matched
        assert result.delay_seconds == 10
        assert result.rule.delay_seconds == 5
        assert result.warnings[0].code is WarningCode.DELAY_BELOW_MINIMUM

    def test_delay_rejected(self):
        """Test the reject policy skips rules under the minimum."""
        rule_set = RuleSet("t", (rule(delay=5, reply="too fast"), rule(delay=30, reply="ok")))
        result = RuleEvaluator(delay_policy="reject").evaluate(rule_set, msg("Hi"))

        assert result.matched
        assert result.index == 1
        assert result.delay_seconds == 30

    def test_malformed_rule_for_other_platform_reported(self):
        """Test malformed rules are reported even when scoped elsewhere."""
        rule_set = RuleSet("t", (
            Rule("unknown", "Hi", "never", 10, ("webchat",)),
            rule(term="", platforms=["webchat"]),
        ))
        result = evaluate(rule_set, msg("Hi", platform="wpforms"))

        assert result.matched is False
        assert [w.code for w in result.warnings] == [
            WarningCode.UNKNOWN_MATCH_TYPE, WarningCode.EMPTY_SEARCH_TERM
        ]

    def test_delay_warning_only_for_matching_rule(self):
        """Test the delay policy is only applied to rules whose text matched."""
        rule_set = RuleSet("t", (
            rule(term="Bye", delay=5),
            rule(term="Hi", delay=5, platforms=["webchat"]),
            rule(term="Hi", delay=20),
        ))
        result = evaluate(rule_set, msg("Hi"))

        assert result.index == 2
        assert result.warnings == []

    def test_invalid_delay_policy(self):
        with pytest.raises(ValueError):
            RuleEvaluator(delay_policy="ignore")

    def test_deterministic(self):
        """Test identical inputs produce identical results."""
        rule_set = RuleSet("t", (Rule("bogus", "Hi", "x", 10), rule(delay=3), rule(term="there")))
        message = msg("Hi there")

        assert evaluate(rule_set, message) == evaluate(rule_set, message)

    def test_end_to_end_scenario(self):
        """Test a single includes rule answers a greeting."""
        rule_set = RuleSet("test", (Rule(MatchType.INCLUDES, "Hi", "Hello, how can I help?", 5, ()),))
        result = evaluate(rule_set, msg("Hi", platform="wpforms"))

        assert result.matched is True
        assert result.index == 0
        assert result.reply_text == "Hello, how can I help?"
        assert result.reason is MatchReason.MATCHED

    def test_result_to_dict(self):
        result = evaluate(RuleSet("t", (rule(),)), msg("Hi"))
        data = result.to_dict()

        assert data["matched"] is True
        assert data["reason"] == "matched"
        assert data["rule"]["message_to_send"] == "Hello!"
        assert data["warnings"] == []
