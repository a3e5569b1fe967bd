"""
WhatsApp Client - WhatsApp Business Cloud API integration
=========================================================

This module provides a thin synchronous client for the WhatsApp
Business Cloud API, including:
- Sending text, image and template messages
- Reading messages, conversations and contact info
- Message template management
- Blocking and unblocking users

Reference: https://developers.facebook.com/docs/whatsapp/cloud-api
"""

from typing import Optional, List, Dict, Any

import httpx

from core.config import Config
from core.exceptions import ConfigError, WhatsAppError
from core.logging import get_logger, mask_phone

logger = get_logger("services.whatsapp")


class WhatsAppBusinessService:
    """
    Client for the WhatsApp Business Cloud API.

    Every call authenticates with a bearer token. Failed calls raise
    WhatsAppError carrying the provider's own error message.

    Example:
        service = WhatsAppBusinessService(phone_number_id, access_token)
        service.send_message("+15551234567", "Hello!")
    """

    API_BASE = "https://graph.facebook.com"

    def __init__(
        self,
        phone_number_id: str,
        access_token: str,
        api_version: str = "v21.0",
        api_base: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            phone_number_id: Business phone number ID
            access_token: Graph API access token
            api_version: Graph API version
            api_base: Override for the Graph API host
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used in tests)
        """
        self.phone_number_id = phone_number_id
        self.access_token = access_token
        self.api_version = api_version
        self.base_url = f"{(api_base or self.API_BASE).rstrip('/')}/{api_version}"

        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    def _request(
        self,
        method: str,
        path: str,
        fallback_error: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Make an API request relative to the phone number resource.

        Args:
            method: HTTP method
            path: Path below ``/{phone_number_id}``
            fallback_error: Message used when the provider gives none

        Returns:
            Decoded JSON response

        Raises:
            WhatsAppError: On transport failures or non-2xx responses
        """
        url = f"/{self.phone_number_id}{path}"

        try:
            response = self._client.request(method, url, params=params, json=json)
        except httpx.HTTPError as e:
            logger.error(f"{fallback_error}: {e}")
            raise WhatsAppError(fallback_error, details={"error": str(e)})

        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = {}

            error = payload.get("error") if isinstance(payload, dict) else None
            message = error.get("message") if isinstance(error, dict) else None

            logger.error(
                f"{fallback_error}: HTTP {response.status_code}",
                extra={"provider_error": payload}
            )
            raise WhatsAppError(
                message or fallback_error,
                status_code=response.status_code,
                details=payload if isinstance(payload, dict) else {}
            )

        if not response.content:
            return {}

        try:
            return response.json()
        except ValueError:
            raise WhatsAppError(fallback_error, status_code=response.status_code)

    @staticmethod
    def build_message_payload(
        to: str,
        message: str,
        media_url: Optional[str] = None,
        template_name: Optional[str] = None,
        template_language: Optional[str] = None,
        template_components: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        Build the request body for a message.

        Templates take precedence over media, media over plain text.
        """
        payload: Dict[str, Any] = {
            "messaging_product": "whatsapp",
            "to": to,
        }

        if template_name:
            payload["type"] = "template"
            payload["template"] = {
                "name": template_name,
                "language": {"code": template_language or "en"},
            }
            if template_components:
                payload["template"]["components"] = template_components
        elif media_url:
            payload["type"] = "image"
            payload["image"] = {"link": media_url}
            if message:
                payload["image"]["caption"] = message
        else:
            payload["type"] = "text"
            payload["text"] = {
                "body": message,
                "preview_url": False,
            }

        return payload

    def send_message(
        self,
        to: str,
        message: str,
        media_url: Optional[str] = None,
        template_name: Optional[str] = None,
        template_language: Optional[str] = None,
        template_components: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        Send a WhatsApp message.

        Args:
            to: Recipient phone number
            message: Message text
            media_url: Image URL to send instead of text
            template_name: Approved template to send instead of text
            template_language: Template language code (default ``en``)
            template_components: Template parameter components

        Returns:
            Provider response

        Raises:
            WhatsAppError: If the provider rejects the message
        """
        payload = self.build_message_payload(
            to, message, media_url, template_name, template_language, template_components
        )

        result = self._request("POST", "/messages", "Failed to send message", json=payload)

        logger.info(
            f"Message sent to {mask_phone(to)}",
            extra={"type": payload["type"]}
        )
        return result

    def get_messages(self, phone_number: str, limit: int = 50) -> Dict[str, Any]:
        return self._request(
            "GET", "/messages", "Failed to fetch messages",
            params={"phone_number": phone_number, "limit": limit}
        )

    def get_chats(self, limit: int = 50) -> Dict[str, Any]:
        return self._request(
            "GET", "/conversations", "Failed to fetch chats", params={"limit": limit}
        )

    def get_contact_info(self, phone_number: str) -> Dict[str, Any]:
        return self._request(
            "GET", "/contacts", "Failed to fetch contact info",
            params={"phone_number": phone_number}
        )

    # === Templates ===

    def get_message_templates(self) -> Dict[str, Any]:
        return self._request("GET", "/message_templates", "Failed to fetch message templates")

    def create_message_template(
        self,
        name: str,
        language: str,
        category: str,
        components: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """
        Create a message template.

        Args:
            name: Template name
            language: Template language code
            category: AUTHENTICATION, MARKETING or UTILITY
            components: Template components
        """
        return self._request(
            "POST", "/message_templates", "Failed to create message template",
            json={
                "name": name,
                "language": language,
                "category": category,
                "components": components,
            }
        )

    def delete_message_template(self, name: str) -> Dict[str, Any]:
        return self._request(
            "DELETE", "/message_templates", "Failed to delete message template",
            json={"name": name}
        )

    # === Blocking ===

    def block_user(self, phone_number: str) -> Dict[str, Any]:
        return self._request(
            "POST", "/blocked", "Failed to block user", json={"phone_number": phone_number}
        )

    def unblock_user(self, phone_number: str) -> Dict[str, Any]:
        return self._request(
            "DELETE", "/blocked", "Failed to unblock user", json={"phone_number": phone_number}
        )

    def get_blocked_users(self) -> Dict[str, Any]:
        return self._request("GET", "/blocked", "Failed to fetch blocked users")

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()


def create_whatsapp_service(
    config: Config,
    transport: Optional[httpx.BaseTransport] = None
) -> WhatsAppBusinessService:
    """
    Create a WhatsApp client from configuration.

    Args:
        config: Application configuration
        transport: Optional httpx transport

    Returns:
        Configured WhatsAppBusinessService

    Raises:
        ConfigError: If credentials are missing
    """
    wa = config.whatsapp
    if not wa.is_configured:
        raise ConfigError("WhatsApp Business API credentials not configured")

    return WhatsAppBusinessService(
        phone_number_id=wa.phone_number_id,
        access_token=wa.access_token,
        api_version=wa.api_version,
        api_base=wa.base_url,
        timeout=wa.timeout,
        transport=transport,
    )
