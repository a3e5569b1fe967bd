"""
Campaign Service - Outbound message campaigns
=============================================

This module provides campaign functionality including:
- Campaign creation with optional media upload
- Local media storage served under /media
- Running a campaign through the message sender
"""

import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.database import Database
from core.exceptions import NotFoundError, ValidationError, WhatsAppError
from core.logging import get_logger, mask_phone

logger = get_logger("services.campaigns")


class MediaStorage:
    """
    Stores campaign media on disk and returns its public URL.

    Example:
        storage = MediaStorage("/var/lib/lead-agent/media", "https://example.com")
        url = storage.upload(content, "1700000000000-flyer.png", "image/png")
    """

    def __init__(self, media_dir: str, public_base_url: str, max_bytes: Optional[int] = None):
        self.media_dir = Path(media_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.max_bytes = max_bytes

    def upload(self, content: bytes, filename: str, content_type: Optional[str] = None) -> str:
        """
        Write media to disk.

        Args:
            content: File bytes
            filename: Target file name
            content_type: MIME type reported by the client

        Returns:
            Public URL of the stored file

        Raises:
            ValidationError: If the file is too large
        """
        if self.max_bytes is not None and len(content) > self.max_bytes:
            raise ValidationError(
                "Media file too large",
                {"size": len(content), "max": self.max_bytes}
            )

        safe_name = re.sub(r"[^A-Za-z0-9._-]+", "_", Path(filename).name)
        self.media_dir.mkdir(parents=True, exist_ok=True)
        (self.media_dir / safe_name).write_bytes(content)

        logger.info(f"Stored media {safe_name}", extra={"content_type": content_type})
        return f"{self.public_base_url}/media/{safe_name}"


@dataclass
class MediaUpload:
    """An uploaded media file."""
    filename: str
    content: bytes
    content_type: Optional[str] = None


@dataclass
class CampaignRunResult:
    """Outcome of running a campaign."""
    campaign_id: str
    sent: int = 0
    failed: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"campaignId": self.campaign_id, "sent": self.sent, "failed": self.failed}


def generate_campaign_id(campaign_name: str) -> str:
    """
    Build a campaign id from its name.

    Whitespace runs become ``-`` and a 4-character random suffix is
    appended, e.g. ``spring-sale-3f9a``.
    """
    slug = re.sub(r"\s+", "-", campaign_name.lower())
    return f"{slug}-{str(uuid.uuid4())[-4:]}"


def lead_phone(lead: Any) -> Optional[str]:
    """Extract a phone number from a campaign lead entry."""
    if isinstance(lead, dict):
        return lead.get("phone_number") or lead.get("phone")
    if lead:
        return str(lead)
    return None


class CampaignService:
    """
    Creates and runs campaigns for an account.

    Example:
        campaigns = CampaignService(db, storage, sender)
        doc = campaigns.create(account, "Spring Sale", "+15550000", "Hi!", ["+15551111"])
        campaigns.run(account, doc["campaignId"])
    """

    def __init__(
        self,
        database: Database,
        storage: MediaStorage,
        sender: Optional[Any] = None,
        time_zone: str = "GMT+00:00"
    ):
        self.db = database
        self.storage = storage
        self.sender = sender
        self.time_zone = time_zone

    def create(
        self,
        account: Dict[str, Any],
        campaign_name: Optional[str],
        from_number: Optional[str],
        message: Optional[str],
        leads: Optional[List[Any]],
        media: Optional[MediaUpload] = None,
        campaign_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create a campaign document.

        Args:
            account: Owning account
            campaign_name: Display name
            from_number: Sending phone number
            message: Message text
            leads: Recipients (phone strings or lead documents)
            media: Optional image to attach
            campaign_id: Explicit id; generated from the name if omitted

        Returns:
            The stored campaign document

        Raises:
            ValidationError: If a required field is missing or the
                campaign id is already in use
        """
        if not campaign_name or not from_number or not message or leads is None:
            raise ValidationError("Missing required fields")

        if not campaign_id:
            campaign_id = generate_campaign_id(campaign_name)

        media_url = None
        if media is not None:
            filename = f"{int(time.time() * 1000)}-{media.filename}"
            media_url = self.storage.upload(media.content, filename, media.content_type)

        campaign = {
            "campaignName": campaign_name,
            "fromNumber": from_number,
            "message": message,
            "leads": leads,
            "mediaURL": media_url,
            "timeZone": self.time_zone,
            "scheduleTime": datetime.now(timezone.utc).isoformat(),
            "campaignId": campaign_id,
            "completed": False,
        }

        if not self.db.add_campaign(account["id"], campaign):
            raise ValidationError("Campaign already exists", {"campaignId": campaign_id})

        logger.info(
            f"Campaign {campaign_id} created",
            extra={"account": account["unique_id"], "leads": len(leads)}
        )
        return campaign

    def list_campaigns(self, account: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self.db.get_campaigns(account["id"])

    def run(self, account: Dict[str, Any], campaign_id: str) -> CampaignRunResult:
        """
        Send a campaign to each of its leads.

        Failures are collected per lead; the campaign is marked completed
        once every lead has been attempted.

        Raises:
            NotFoundError: If the campaign does not exist
            WhatsAppError: If no sender is configured
        """
        campaign = self.db.get_campaign(account["id"], campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign not found", {"campaignId": campaign_id})

        if self.sender is None:
            raise WhatsAppError("WhatsApp sender not configured")

        result = CampaignRunResult(campaign_id=campaign_id)

        for lead in campaign["leads"]:
            phone = lead_phone(lead)
            if not phone:
                result.failed.append({"lead": lead, "error": "Missing phone number"})
                continue

            try:
                self.sender.send_message(phone, campaign["message"], media_url=campaign["mediaURL"])
                result.sent += 1
            except WhatsAppError as e:
                logger.warning(f"Campaign send to {mask_phone(phone)} failed: {e.message}")
                result.failed.append({"lead": lead, "error": e.message})

        self.db.mark_campaign_completed(account["id"], campaign_id)

        logger.info(
            f"Campaign {campaign_id} completed",
            extra={"sent": result.sent, "failed": len(result.failed)}
        )
        return result
