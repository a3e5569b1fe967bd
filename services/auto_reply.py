"""
Auto Reply Service - Inbound message pipeline
=============================================

This module connects inbound messages to the rule evaluator:
- Auto-reply toggle gate per account
- Inbound de-duplication by provider message id
- Rule evaluation against the account's effective tactic
- Delayed reply scheduling and sending
- Message logging
"""

import hashlib
from datetime import datetime, timezone
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from core.config import ChatbotConfig
from core.database import Database
from core.exceptions import NotFoundError, SchedulerError, ValidationError, WhatsAppError
from core.logging import get_logger, mask_phone
from rules.evaluator import RuleEvaluator
from rules.models import InboundMessage, MatchResult
from rules.store import RuleStore
from .reply_scheduler import ReplyScheduler

logger = get_logger("services.auto_reply")


class InboundStatus(Enum):
    """Terminal outcome of handling one inbound message."""
    AUTO_REPLY_DISABLED = "auto_reply_disabled"
    DUPLICATE = "duplicate"
    NO_MATCH = "no_match"
    SCHEDULED = "scheduled"


@dataclass
class InboundOutcome:
    """
    Result of handling an inbound message.

    Attributes:
        status (InboundStatus): What happened
        message_key (str): Id used for de-duplication
        inbound_id (int): Row id of the recorded inbound message
        reply_id (int): Row id of the scheduled reply
        result (MatchResult): Evaluation result, when evaluated
    """
    status: InboundStatus
    message_key: str
    inbound_id: Optional[int] = None
    reply_id: Optional[int] = None
    result: Optional[MatchResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message_key": self.message_key,
            "inbound_id": self.inbound_id,
            "reply_id": self.reply_id,
            "result": self.result.to_dict() if self.result else None,
        }


def message_key(message: InboundMessage) -> str:
    """
    Stable identifier of an inbound message.

    The provider message id when present, otherwise a fingerprint of
    sender, platform and body, plus the provider timestamp when one was
    sent. Without a timestamp, retries of the same payload share a key.
    """
    if message.message_id:
        return message.message_id

    parts = [message.sender_phone, message.platform, message.body]
    if message.timestamp is not None:
        parts.append(message.timestamp.isoformat())

    raw = "|".join(parts)
    return "fp-" + hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None

    if isinstance(value, (int, float)) or str(value).isdigit():
        return datetime.fromtimestamp(int(value), tz=timezone.utc)

    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid timestamp: {value}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_inbound_payload(payload: Dict[str, Any], default_platform: str = "other") -> List[InboundMessage]:
    """
    Normalize an inbound webhook body into messages.

    Accepts the WhatsApp Cloud API notification envelope
    (``entry[].changes[].value.messages[]``) or a flat object with the
    body under ``body``, ``message`` or ``text`` and the sender under
    ``phone``, ``phone_number`` or ``from``.

    Raises:
        ValidationError: If a flat payload lacks a sender
    """
    if "entry" in payload:
        messages = []
        for entry in payload.get("entry") or []:
            for change in entry.get("changes") or []:
                value = change.get("value") or {}
                names = {
                    c.get("wa_id"): (c.get("profile") or {}).get("name")
                    for c in value.get("contacts") or []
                }
                for item in value.get("messages") or []:
                    if item.get("type", "text") != "text":
                        continue
                    messages.append(InboundMessage(
                        body=(item.get("text") or {}).get("body", ""),
                        platform="whatsapp",
                        sender_phone=item.get("from", ""),
                        timestamp=_parse_timestamp(item.get("timestamp")),
                        message_id=item.get("id"),
                        sender_name=names.get(item.get("from")),
                    ))
        return messages

    phone = payload.get("phone") or payload.get("phone_number") or payload.get("from")
    if not phone:
        raise ValidationError("phone is required")

    body = payload.get("body")
    if body is None:
        body = payload.get("message")
    if body is None:
        body = payload.get("text", "")

    return [InboundMessage(
        body=str(body),
        platform=payload.get("platform") or payload.get("source") or default_platform,
        sender_phone=str(phone),
        timestamp=_parse_timestamp(payload.get("timestamp")),
        message_id=payload.get("message_id") or payload.get("id"),
        sender_name=payload.get("name") or payload.get("your_name"),
    )]


class AutoReplyService:
    """
    Handles inbound messages for accounts with auto-reply enabled.

    Example:
        service = AutoReplyService(db, RuleStore(db), ReplyScheduler(), sender)
        outcome = service.handle_inbound("acme-1a2b3c", message)
    """

    def __init__(
        self,
        database: Database,
        rule_store: RuleStore,
        scheduler: ReplyScheduler,
        sender: Optional[Any] = None,
        evaluator: Optional[RuleEvaluator] = None
    ):
        """
        Initialize the pipeline.

        Args:
            database: Database instance
            rule_store: Tactic storage
            scheduler: Delayed job runner
            sender: Message sender with ``send_message(to, message)``;
                None when the provider is not configured
            evaluator: Rule evaluator (default settings if omitted)
        """
        self.db = database
        self.rule_store = rule_store
        self.scheduler = scheduler
        self.sender = sender
        self.evaluator = evaluator or RuleEvaluator()

    @classmethod
    def from_config(
        cls,
        chatbot: ChatbotConfig,
        database: Database,
        scheduler: ReplyScheduler,
        sender: Optional[Any] = None
    ) -> "AutoReplyService":
        """Create the pipeline from chatbot settings."""
        evaluator = RuleEvaluator(
            case_sensitive=chatbot.case_sensitive,
            min_delay_seconds=chatbot.min_delay_seconds,
            delay_policy=chatbot.delay_policy,
        )
        store = RuleStore(database, min_delay_seconds=chatbot.min_delay_seconds)
        return cls(database, store, scheduler, sender, evaluator)

    def _get_account(self, unique_id: str) -> Dict[str, Any]:
        account = self.db.get_account_by_unique_id(unique_id)
        if account is None:
            raise NotFoundError("User not found", {"unique_id": unique_id})
        return account

    def handle_inbound(self, unique_id: str, message: InboundMessage) -> InboundOutcome:
        """
        Process one inbound message.

        Args:
            unique_id: Account's public identifier
            message: Normalized inbound message

        Returns:
            InboundOutcome describing what happened

        Raises:
            NotFoundError: If the account does not exist
        """
        account = self._get_account(unique_id)
        account_id = account["id"]
        key = message_key(message)

        inbound_id = self.db.record_inbound(
            account_id, key, message.sender_phone, message.body, message.platform
        )

        if not account["auto_reply_enabled"]:
            return InboundOutcome(InboundStatus.AUTO_REPLY_DISABLED, key, inbound_id)

        if inbound_id is None:
            logger.info(
                f"Duplicate inbound message from {mask_phone(message.sender_phone)}",
                extra={"message_key": key}
            )
            return InboundOutcome(InboundStatus.DUPLICATE, key)

        rule_set = self.rule_store.load_rule_set(account_id)
        result = self.evaluator.evaluate(rule_set, message)

        for warning in result.warnings:
            logger.warning(
                f"Skipped or adjusted rule {warning.index} in tactic '{rule_set.name}': {warning.code.value}",
                extra={"account_id": account_id, "detail": warning.detail}
            )

        if not result.matched:
            return InboundOutcome(InboundStatus.NO_MATCH, key, inbound_id, result=result)

        reply_id = self.db.add_outgoing(
            account_id,
            message.sender_phone,
            result.rule.reply_text,
            status="scheduled",
            response_to=inbound_id,
            rule_index=result.index,
        )

        try:
            scheduled = self.scheduler.schedule(
                (account_id, key, result.index),
                result.delay_seconds,
                lambda: self._send_reply(unique_id, reply_id, message.sender_phone, result.rule.reply_text),
            )
        except SchedulerError as e:
            self.db.update_message_status(reply_id, "cancelled", e.message)
            raise

        if not scheduled:
            self.db.update_message_status(reply_id, "cancelled", "Duplicate reply")
            return InboundOutcome(InboundStatus.DUPLICATE, key, inbound_id, result=result)

        logger.info(
            f"Reply to {mask_phone(message.sender_phone)} scheduled in {result.delay_seconds}s",
            extra={"account_id": account_id, "rule_index": result.index}
        )
        return InboundOutcome(InboundStatus.SCHEDULED, key, inbound_id, reply_id, result)

    def _send_reply(self, unique_id: str, reply_id: int, to: str, text: str) -> None:
        """Send a scheduled reply and record the outcome."""
        account = self.db.get_account_by_unique_id(unique_id)
        if account is None or not account["auto_reply_enabled"]:
            self.db.update_message_status(reply_id, "cancelled", "Auto-reply disabled")
            return

        if self.sender is None:
            logger.error("Reply not sent: WhatsApp sender not configured")
            self.db.update_message_status(reply_id, "failed", "WhatsApp sender not configured")
            return

        try:
            self.sender.send_message(to, text)
        except WhatsAppError as e:
            logger.error(f"Reply to {mask_phone(to)} failed: {e.message}")
            self.db.update_message_status(reply_id, "failed", e.message)
            return

        self.db.update_message_status(reply_id, "sent")

    def set_auto_reply(self, unique_id: str, enabled: bool) -> Dict[str, Any]:
        """
        Turn auto-reply ON or OFF for an account.

        Turning it OFF cancels every pending reply.

        Returns:
            ``{"enabled": bool, "cancelled": int}``
        """
        account = self._get_account(unique_id)
        self.db.set_auto_reply(account["id"], enabled)

        cancelled = 0
        if not enabled:
            cancelled = self.scheduler.cancel_account(account["id"])
            self.db.cancel_scheduled_messages(account["id"])

        logger.info(
            f"Auto-reply {'enabled' if enabled else 'disabled'}",
            extra={"account": unique_id, "cancelled": cancelled}
        )
        return {"enabled": enabled, "cancelled": cancelled}

    def test_message(self, unique_id: str, message: InboundMessage) -> MatchResult:
        """Evaluate a sample message without recording or sending anything."""
        account = self._get_account(unique_id)
        return self.evaluator.evaluate(self.rule_store.load_rule_set(account["id"]), message)
