"""
Test Database Module
====================

Unit tests for SQLite storage and the rule store.
"""

import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.database import init_database
from core.exceptions import DatabaseError, NotFoundError, ValidationError
from rules.models import MatchType, Rule, RuleSet
from rules.store import RuleStore


@pytest.fixture
def db(tmp_path):
    database = init_database(str(tmp_path / "test.db"))
    yield database
    database.close()


@pytest.fixture
def account(db):
    return db.create_account("owner@example.com", "owner-abc123", "hash-1")


class TestAccounts:
    """Tests for account documents."""

    def test_create_and_lookup(self, db, account):
        assert account["unique_id"] == "owner-abc123"
        assert account["auto_reply_enabled"] is False
        assert db.get_account_by_unique_id("owner-abc123")["id"] == account["id"]
        assert db.get_account_by_api_key_hash("hash-1")["email"] == "owner@example.com"
        assert db.get_account_by_unique_id("missing") is None

    def test_duplicate_email(self, db, account):
        with pytest.raises(DatabaseError):
            db.create_account("owner@example.com", "other-1", "hash-2")

    def test_toggle_and_package(self, db, account):
        db.set_auto_reply(account["id"], True)
        db.set_package(account["id"], "pro")

        updated = db.get_account(account["id"])
        assert updated["auto_reply_enabled"] is True
        assert updated["package"] == "pro"


class TestLeads:
    """Tests for lead set semantics."""

    def test_duplicate_lead_not_added(self, db, account):
        """Test the same phone and source is stored once."""
        assert db.add_lead(account["id"], "Jo", "+15550001", "wpforms") is True
        assert db.add_lead(account["id"], "Jo", "+15550001", "wpforms") is False
        assert len(db.get_leads(account["id"])) == 1

    def test_same_phone_other_source(self, db, account):
        db.add_lead(account["id"], "Jo", "+15550001", "wpforms")
        db.add_lead(account["id"], "Jo", "+15550001", "webchat")

        assert len(db.get_leads(account["id"])) == 2
        assert len(db.get_leads(account["id"], source="webchat")) == 1


class TestMessages:
    """Tests for the message log."""

    def test_inbound_dedupe(self, db, account):
        """Test an inbound message id is recorded once."""
        first = db.record_inbound(account["id"], "wamid.1", "+15550001", "Hi")
        second = db.record_inbound(account["id"], "wamid.1", "+15550001", "Hi")

        assert first is not None
        assert second is None

    def test_outgoing_status(self, db, account):
        inbound = db.record_inbound(account["id"], "wamid.2", "+15550001", "Hi")
        reply = db.add_outgoing(account["id"], "+15550001", "Hello", status="scheduled", response_to=inbound)

        assert db.cancel_scheduled_messages(account["id"]) == 1
        assert db.get_message(reply)["status"] == "cancelled"

        db.update_message_status(reply, "failed", "boom")
        assert db.get_message(reply)["error"] == "boom"

    def test_statistics(self, db, account):
        db.record_inbound(account["id"], "wamid.3", "+15550001", "Hi")
        db.add_lead(account["id"], None, "+15550001", "other")

        stats = db.get_statistics()
        assert stats["accounts"] == 1
        assert stats["leads"] == 1
        assert stats["messages"]["incoming"]["received"] == 1


class TestCampaigns:
    """Tests for campaign documents."""

    def test_add_and_complete(self, db, account):
        campaign = {
            "campaignId": "spring-1a2b",
            "campaignName": "Spring",
            "fromNumber": "+15550000",
            "message": "Hi!",
            "leads": ["+15550001", {"phone_number": "+15550002"}],
            "mediaURL": None,
            "timeZone": "GMT+00:00",
            "scheduleTime": "2024-01-01T00:00:00+00:00",
            "completed": False,
        }
        assert db.add_campaign(account["id"], campaign) is True
        assert db.add_campaign(account["id"], campaign) is False

        stored = db.get_campaign(account["id"], "spring-1a2b")
        assert stored == campaign

        db.mark_campaign_completed(account["id"], "spring-1a2b")
        assert db.get_campaigns(account["id"])[0]["completed"] is True


class TestRuleStore:
    """Tests for tactic persistence."""

    @pytest.fixture
    def store(self, db):
        return RuleStore(db)

    def rows(self, n):
        return tuple(
            Rule(
                MatchType.STARTS_WITH if i % 2 else MatchType.INCLUDES,
                f"term {i}",
                f"reply {i}",
                10 + i,
                ("wpforms",) if i % 3 == 0 else (),
            )
            for i in range(n)
        )

    def test_round_trip(self, store, account):
        """Test save then load preserves order and fields."""
        rule_set = RuleSet("main", self.rows(7))
        store.save_rule_set(account["id"], rule_set)

        assert store.load_rule_set(account["id"]) == rule_set

    def test_no_tactics(self, store, account):
        assert store.load_rule_set(account["id"]) == RuleSet(name="")

    def test_active_tactic(self, store, account):
        """Test the active tactic is the effective RuleSet."""
        first = RuleSet("first", self.rows(1))
        second = RuleSet("second", self.rows(2))
        store.save_tactics(account["id"], [first, second], active="second")

        assert store.load_rule_set(account["id"]) == second

    def test_first_tactic_without_active(self, store, account):
        first = RuleSet("first", self.rows(1))
        store.save_tactics(account["id"], [first, RuleSet("second", self.rows(2))])

        assert store.load_rule_set(account["id"]) == first

    def test_save_replaces_whole_tactic(self, store, account):
        """Test saving a tactic replaces all its rows."""
        store.save_rule_set(account["id"], RuleSet("main", self.rows(5)))
        store.save_rule_set(account["id"], RuleSet("main", self.rows(2)))

        tactics = store.load_tactics(account["id"])
        assert len(tactics) == 1
        assert len(tactics[0]) == 2

    def test_delay_below_minimum_rejected(self, store, account):
        bad = RuleSet("main", (Rule(MatchType.INCLUDES, "Hi", "Hello", 5),))
        with pytest.raises(ValidationError):
            store.save_rule_set(account["id"], bad)

    def test_duplicate_names_rejected(self, store, account):
        with pytest.raises(ValidationError):
            store.save_tactics(account["id"], [RuleSet("a"), RuleSet("a")])

    def test_unknown_active_rejected(self, store, account):
        with pytest.raises(ValidationError):
            store.save_tactics(account["id"], [RuleSet("a")], active="b")

    def test_unknown_account(self, store):
        with pytest.raises(NotFoundError):
            store.load_rule_set(999)
