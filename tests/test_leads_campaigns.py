"""
Test Leads and Campaigns Modules
================================

Unit tests for lead registration, campaign creation and campaign runs.
"""

import re

import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.database import init_database
from core.exceptions import NotFoundError, ValidationError, WhatsAppError
from services.account_service import AccountService
from services.campaign_service import (
    CampaignService, MediaStorage, MediaUpload, generate_campaign_id
)
from services.lead_service import LeadService


class FakeSender:
    def __init__(self, failing=()):
        self.sent = []
        self.failing = set(failing)

    def send_message(self, to, message, media_url=None, **kwargs):
        if to in self.failing:
            raise WhatsAppError("Recipient not on WhatsApp")
        self.sent.append((to, message, media_url))
        return {}


@pytest.fixture
def db(tmp_path):
    database = init_database(str(tmp_path / "test.db"))
    yield database
    database.close()


@pytest.fixture
def account(db):
    account, _ = AccountService(db).create("owner@example.com")
    return account


class TestAccountService:
    """Tests for accounts and API keys."""

    def test_authenticate(self, db):
        accounts = AccountService(db)
        account, api_key = accounts.create("Jane.Doe@Example.com", package="pro")

        assert account["email"] == "jane.doe@example.com"
        assert account["unique_id"].startswith("jane-doe-")
        assert account["api_key_hash"] != api_key
        assert accounts.authenticate(api_key)["id"] == account["id"]

    def test_bad_key(self, db):
        from core.exceptions import AuthenticationError

        with pytest.raises(AuthenticationError):
            AccountService(db).authenticate("nope")

    def test_duplicate_email(self, db, account):
        with pytest.raises(ValidationError):
            AccountService(db).create("owner@example.com")


class TestLeadService:
    """Tests for lead registration."""

    def test_register_with_your_name(self, db, account):
        """Test the WPForms name field is accepted."""
        leads = LeadService(db)
        result = leads.register(account["unique_id"], {"your_name": "Jo", "phone_number": "+15550001"}, "wpforms")

        assert result.added is True
        assert result.message == "Lead from wpforms added"
        assert leads.list_leads(account["id"])[0]["name"] == "Jo"

    def test_default_source(self, db, account):
        result = LeadService(db).register(account["unique_id"], {"name": "Jo", "phone_number": "+15550001"})
        assert result.source == "other"

    def test_duplicate_lead(self, db, account):
        """Test a repeated submission succeeds without adding a lead."""
        leads = LeadService(db)
        payload = {"name": "Jo", "phone_number": "+15550001"}

        assert leads.register(account["unique_id"], payload, "wpforms").added is True
        assert leads.register(account["unique_id"], payload, "wpforms").added is False
        assert len(leads.list_leads(account["id"])) == 1

    def test_missing_phone(self, db, account):
        with pytest.raises(ValidationError):
            LeadService(db).register(account["unique_id"], {"name": "Jo"})

    def test_unknown_account(self, db):
        with pytest.raises(NotFoundError):
            LeadService(db).register("nobody", {"phone_number": "+1"})


class TestCampaignService:
    """Tests for campaigns."""

    @pytest.fixture
    def storage(self, tmp_path):
        return MediaStorage(str(tmp_path / "media"), "https://agent.example.com/", max_bytes=1024)

    def test_generate_campaign_id(self):
        """Test ids are slugged names with a 4-character suffix."""
        campaign_id = generate_campaign_id("Spring  Sale 2024")
        assert re.fullmatch(r"spring-sale-2024-[0-9a-f]{4}", campaign_id)

    def test_create(self, db, account, storage):
        campaigns = CampaignService(db, storage)
        doc = campaigns.create(account, "Spring Sale", "+15550000", "Hi!", ["+15550001"])

        assert doc["campaignId"].startswith("spring-sale-")
        assert doc["timeZone"] == "GMT+00:00"
        assert doc["completed"] is False
        assert doc["mediaURL"] is None
        assert campaigns.list_campaigns(account) == [doc]

    def test_missing_fields(self, db, account, storage):
        with pytest.raises(ValidationError) as exc_info:
            CampaignService(db, storage).create(account, "Spring", None, "Hi!", [])
        assert exc_info.value.message == "Missing required fields"

    def test_explicit_id_and_duplicate(self, db, account, storage):
        campaigns = CampaignService(db, storage)
        campaigns.create(account, "Spring", "+1", "Hi!", [], campaign_id="fixed")

        with pytest.raises(ValidationError):
            campaigns.create(account, "Spring", "+1", "Hi!", [], campaign_id="fixed")

    def test_media_upload(self, db, account, storage, tmp_path):
        """Test media is stored with a timestamp prefix and a public URL."""
        doc = CampaignService(db, storage).create(
            account, "Promo", "+1", "Look!", ["+2"],
            media=MediaUpload("flyer.png", b"\x89PNG", "image/png"),
        )

        assert re.fullmatch(r"https://agent\.example\.com/media/\d{13}-flyer\.png", doc["mediaURL"])
        stored = list((tmp_path / "media").iterdir())
        assert len(stored) == 1
        assert stored[0].read_bytes() == b"\x89PNG"

    def test_media_too_large(self, db, account, storage):
        with pytest.raises(ValidationError):
            CampaignService(db, storage).create(
                account, "Promo", "+1", "Look!", [], media=MediaUpload("big.bin", b"x" * 2048)
            )

    def test_run(self, db, account, storage):
        """Test a run sends to every lead and collects failures."""
        sender = FakeSender(failing={"+15550003"})
        campaigns = CampaignService(db, storage, sender)
        doc = campaigns.create(
            account, "Spring", "+1", "Hi!",
            ["+15550001", {"phone_number": "+15550002"}, "+15550003", {"name": "no phone"}],
        )

        result = campaigns.run(account, doc["campaignId"])

        assert result.sent == 2
        assert [f["error"] for f in result.failed] == ["Recipient not on WhatsApp", "Missing phone number"]
        assert sender.sent[0] == ("+15550001", "Hi!", None)
        assert db.get_campaign(account["id"], doc["campaignId"])["completed"] is True

    def test_run_unknown_campaign(self, db, account, storage):
        with pytest.raises(NotFoundError):
            CampaignService(db, storage, FakeSender()).run(account, "missing")
