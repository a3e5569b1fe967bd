"""
Services Module - Core services for WhatsApp Lead Agent
=======================================================

This module provides the main services:
- WhatsApp Client: Business Cloud API integration
- Reply Scheduler: Delayed, cancellable reply sends
- Auto Reply: Inbound message pipeline
- Leads: Lead capture
- Campaigns: Outbound campaigns and media storage
- Accounts: Account creation and API keys
"""

from .whatsapp_client import WhatsAppBusinessService, create_whatsapp_service
from .reply_scheduler import ReplyScheduler
from .auto_reply import AutoReplyService, InboundOutcome, InboundStatus
from .lead_service import LeadService, LeadResult
from .campaign_service import CampaignService, CampaignRunResult, MediaStorage, MediaUpload
from .account_service import AccountService

__all__ = [
    "WhatsAppBusinessService",
    "create_whatsapp_service",
    "ReplyScheduler",
    "AutoReplyService",
    "InboundOutcome",
    "InboundStatus",
    "LeadService",
    "LeadResult",
    "CampaignService",
    "CampaignRunResult",
    "MediaStorage",
    "MediaUpload",
    "AccountService",
]
