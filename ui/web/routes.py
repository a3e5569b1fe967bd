"""
Web Routes - API endpoints
==========================

This module defines all web routes for the WhatsApp Lead Agent:
lead capture and inbound webhooks, campaigns, chatbot tactics,
direct sends, status and admin account management.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Header, Query, Request, UploadFile
from pydantic import BaseModel, Field

from core.exceptions import ServiceUnavailableError, ValidationError
from core.logging import get_logger
from rules.models import InboundMessage, Rule, RuleSet
from services.account_service import public_account
from services.auto_reply import parse_inbound_payload
from services.campaign_service import MediaUpload

logger = get_logger("web.routes")

router = APIRouter()


# === Dependencies ===

async def current_account(request: Request, x_api_key: Optional[str] = Header(None)) -> Dict[str, Any]:
    """Resolve the calling account from the X-API-Key header."""
    return request.app.state.accounts.authenticate(x_api_key)


async def admin_account(
    request: Request,
    account: Dict[str, Any] = Depends(current_account)
) -> Dict[str, Any]:
    """Require the admin capability."""
    request.app.state.access_policy.require_admin(account)
    return account


def require_sender(request: Request) -> Any:
    sender = request.app.state.sender
    if sender is None:
        raise ServiceUnavailableError("WhatsApp Business API credentials not configured")
    return sender


async def read_payload(request: Request) -> Dict[str, Any]:
    """Read a JSON or form-encoded request body."""
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            raise ValidationError("Invalid JSON body")
    else:
        form = await request.form()
        payload = dict(form)

    if not isinstance(payload, dict):
        raise ValidationError("Request body must be an object")
    return payload


# === Request Models ===

class RuleRow(BaseModel):
    """One row of a tactic's rule table."""
    type: str
    search_term: str
    message_to_send: str
    delay: int
    platforms: List[str] = Field(default_factory=list)


class Tactic(BaseModel):
    """Named rule table."""
    name: str
    rows: List[RuleRow] = Field(default_factory=list)


class TacticsUpdate(BaseModel):
    """Full replacement of an account's tactics."""
    tactics: List[Tactic]
    active_tactic: Optional[str] = None


class ToggleRequest(BaseModel):
    enabled: bool


class TestMessage(BaseModel):
    """Sample message for rule testing."""
    message: str
    platform: Optional[str] = None
    phone_number: str = "+10000000000"


class SendMessageRequest(BaseModel):
    """Direct send request model."""
    phone_number: str
    message: str = ""
    media_url: Optional[str] = None
    template_name: Optional[str] = None
    template_language: Optional[str] = None
    template_components: Optional[List[Dict[str, Any]]] = None


class AccountCreate(BaseModel):
    email: str
    package: Optional[str] = None
    auto_reply_enabled: Optional[bool] = None


class PackageUpdate(BaseModel):
    package: Optional[str] = None


# === Leads ===

@router.post("/api/leads/register")
async def register_lead(
    request: Request,
    unique_id: str = Query(...),
    source: Optional[str] = Query(None)
):
    """Lead capture webhook (e.g. WPForms)."""
    payload = await read_payload(request)
    result = request.app.state.leads.register(unique_id, payload, source)

    return {"message": result.message, "added": result.added}


@router.get("/api/leads")
async def list_leads(
    request: Request,
    source: Optional[str] = Query(None),
    account: Dict[str, Any] = Depends(current_account)
):
    """Get the account's leads."""
    return {"leads": request.app.state.leads.list_leads(account["id"], source)}


# === Campaigns ===

@router.post("/api/campaign/create")
async def create_campaign(
    request: Request,
    campaignName: Optional[str] = Form(None),
    fromNumber: Optional[str] = Form(None),
    message: Optional[str] = Form(None),
    leads: Optional[str] = Form(None),
    campaignId: Optional[str] = Form(None),
    media: Optional[UploadFile] = File(None),
    account: Dict[str, Any] = Depends(current_account)
):
    """Create a campaign from a multipart form."""
    try:
        lead_list = json.loads(leads) if leads else []
    except ValueError:
        raise ValidationError("leads must be a JSON array")

    if not isinstance(lead_list, list):
        raise ValidationError("leads must be a JSON array")

    upload = None
    if media is not None and media.filename:
        upload = MediaUpload(
            filename=media.filename,
            content=await media.read(),
            content_type=media.content_type,
        )

    campaign = request.app.state.campaigns.create(
        account,
        campaign_name=campaignName,
        from_number=fromNumber,
        message=message,
        leads=lead_list,
        media=upload,
        campaign_id=campaignId,
    )

    return {"message": "Campaign created successfully", "campaignId": campaign["campaignId"]}


@router.get("/api/campaigns")
async def list_campaigns(request: Request, account: Dict[str, Any] = Depends(current_account)):
    return {"campaigns": request.app.state.campaigns.list_campaigns(account)}


@router.post("/api/campaigns/{campaign_id}/run")
async def run_campaign(
    request: Request,
    campaign_id: str,
    account: Dict[str, Any] = Depends(current_account)
):
    """Send a campaign to its leads."""
    require_sender(request)
    result = request.app.state.campaigns.run(account, campaign_id)
    return result.to_dict()


# === Chatbot ===

@router.get("/api/chatbot/tactics")
async def get_tactics(request: Request, account: Dict[str, Any] = Depends(current_account)):
    """Get tactics, active tactic and toggle state."""
    store = request.app.state.auto_reply.rule_store
    return {
        "tactics": [tactic.to_dict() for tactic in store.load_tactics(account["id"])],
        "active_tactic": account["active_tactic"],
        "auto_reply_enabled": account["auto_reply_enabled"],
    }


@router.put("/api/chatbot/tactics")
async def save_tactics(
    request: Request,
    update: TacticsUpdate,
    account: Dict[str, Any] = Depends(current_account)
):
    """Replace all tactics."""
    tactics = [
        RuleSet.from_dict({"name": t.name, "rows": [row.model_dump() for row in t.rows]})
        for t in update.tactics
    ]
    request.app.state.auto_reply.rule_store.save_tactics(
        account["id"], tactics, active=update.active_tactic
    )
    return {"success": True, "message": f"Saved {len(tactics)} tactic(s)"}


@router.post("/api/chatbot/toggle")
async def toggle_auto_reply(
    request: Request,
    toggle: ToggleRequest,
    account: Dict[str, Any] = Depends(current_account)
):
    """Turn auto-reply ON or OFF."""
    return request.app.state.auto_reply.set_auto_reply(account["unique_id"], toggle.enabled)


@router.post("/api/chatbot/test")
async def test_message(
    request: Request,
    test_data: TestMessage,
    account: Dict[str, Any] = Depends(current_account)
):
    """Evaluate a sample message without sending anything."""
    config = request.app.state.config
    message = InboundMessage(
        body=test_data.message,
        platform=test_data.platform or config.chatbot.default_platform,
        sender_phone=test_data.phone_number,
    )
    result = request.app.state.auto_reply.test_message(account["unique_id"], message)
    return result.to_dict()


# === Inbound ===

@router.post("/webhooks/inbound/{unique_id}")
async def inbound_webhook(request: Request, unique_id: str):
    """Inbound message ingestion."""
    config = request.app.state.config
    payload = await read_payload(request)
    messages = parse_inbound_payload(payload, config.chatbot.default_platform)

    outcomes = [
        request.app.state.auto_reply.handle_inbound(unique_id, message).to_dict()
        for message in messages
    ]
    return {"received": len(outcomes), "outcomes": outcomes}


# === Messages ===

@router.post("/api/messages/send")
async def send_message(
    request: Request,
    send_data: SendMessageRequest,
    account: Dict[str, Any] = Depends(current_account)
):
    """Send a message through the WhatsApp Business API."""
    sender = require_sender(request)
    database = request.app.state.database

    if not (send_data.message or send_data.media_url or send_data.template_name):
        raise ValidationError("message, media_url or template_name is required")

    response = sender.send_message(
        send_data.phone_number,
        send_data.message,
        media_url=send_data.media_url,
        template_name=send_data.template_name,
        template_language=send_data.template_language,
        template_components=send_data.template_components,
    )

    database.add_outgoing(
        account["id"],
        send_data.phone_number,
        send_data.message or send_data.template_name or send_data.media_url,
    )
    return {"success": True, "response": response}


@router.get("/api/messages")
async def list_messages(
    request: Request,
    phone: Optional[str] = Query(None),
    direction: Optional[str] = Query(None, pattern="^(incoming|outgoing)$"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    account: Dict[str, Any] = Depends(current_account)
):
    """Get the account's message log."""
    messages = request.app.state.database.get_messages(
        account["id"],
        phone_number=phone,
        direction=direction,
        limit=limit,
        offset=offset
    )
    return {"messages": messages}


@router.get("/api/status")
async def get_status(request: Request):
    """Get system status."""
    database = request.app.state.database
    scheduler = request.app.state.scheduler

    return {
        "database": database.get_statistics(),
        "whatsapp": {"available": request.app.state.sender is not None},
        "scheduler": {"pending": len(scheduler.pending())},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# === Admin ===

@router.get("/api/admin/accounts")
async def admin_list_accounts(request: Request, admin: Dict[str, Any] = Depends(admin_account)):
    return {"accounts": request.app.state.accounts.list_accounts()}


@router.post("/api/admin/accounts")
async def admin_create_account(
    request: Request,
    data: AccountCreate,
    admin: Dict[str, Any] = Depends(admin_account)
):
    """Create an account; the API key is only returned here."""
    account, api_key = request.app.state.accounts.create(
        data.email, package=data.package, auto_reply_enabled=data.auto_reply_enabled
    )
    return {"account": public_account(account), "api_key": api_key}


@router.put("/api/admin/accounts/{unique_id}/package")
async def admin_set_package(
    request: Request,
    unique_id: str,
    data: PackageUpdate,
    admin: Dict[str, Any] = Depends(admin_account)
):
    account = request.app.state.accounts.set_package(unique_id, data.package)
    return {"account": public_account(account)}
