"""
Test WhatsApp Client Module
===========================

Unit tests for the WhatsApp Business Cloud API client.
"""

import json
import pytest
import httpx
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import Config, WhatsAppConfig
from core.exceptions import ConfigError, WhatsAppError
from services.whatsapp_client import WhatsAppBusinessService, create_whatsapp_service


class Recorder:
    """Mock transport handler that records requests."""

    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body if body is not None else {"messages": [{"id": "wamid.1"}]}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def service(recorder):
    return WhatsAppBusinessService(
        "12345", "token", transport=httpx.MockTransport(recorder)
    )


class TestSendMessage:
    """Tests for message payloads."""

    def test_text_message(self, service, recorder):
        """Test plain text payload with link previews off."""
        response = service.send_message("+15550001", "Hello")

        request = recorder.requests[-1]
        assert request.method == "POST"
        assert str(request.url) == "https://graph.facebook.com/v21.0/12345/messages"
        assert request.headers["Authorization"] == "Bearer token"
        assert recorder.last_json == {
            "messaging_product": "whatsapp",
            "to": "+15550001",
            "type": "text",
            "text": {"body": "Hello", "preview_url": False},
        }
        assert response["messages"][0]["id"] == "wamid.1"

    def test_image_message(self, service, recorder):
        """Test media URL produces an image payload."""
        service.send_message("+15550001", "", media_url="https://example.com/a.png")

        payload = recorder.last_json
        assert payload["type"] == "image"
        assert payload["image"] == {"link": "https://example.com/a.png"}

    def test_template_message(self, service, recorder):
        """Test template takes precedence and defaults to English."""
        service.send_message(
            "+15550001", "ignored",
            media_url="https://example.com/a.png",
            template_name="welcome",
            template_components=[{"type": "body"}],
        )

        payload = recorder.last_json
        assert payload["type"] == "template"
        assert payload["template"] == {
            "name": "welcome",
            "language": {"code": "en"},
            "components": [{"type": "body"}],
        }

    def test_provider_error_message(self):
        """Test provider error messages are surfaced."""
        recorder = Recorder(400, {"error": {"message": "Invalid parameter", "code": 100}})
        service = WhatsAppBusinessService("1", "t", transport=httpx.MockTransport(recorder))

        with pytest.raises(WhatsAppError) as exc_info:
            service.send_message("+15550001", "Hello")

        assert exc_info.value.message == "Invalid parameter"
        assert exc_info.value.status_code == 400

    def test_fallback_error_message(self):
        recorder = Recorder(500, {"unexpected": True})
        service = WhatsAppBusinessService("1", "t", transport=httpx.MockTransport(recorder))

        with pytest.raises(WhatsAppError) as exc_info:
            service.send_message("+15550001", "Hello")

        assert exc_info.value.message == "Failed to send message"

    def test_transport_error(self):
        def fail(request):
            raise httpx.ConnectError("refused", request=request)

        service = WhatsAppBusinessService("1", "t", transport=httpx.MockTransport(fail))

        with pytest.raises(WhatsAppError):
            service.send_message("+15550001", "Hello")


class TestOtherEndpoints:
    """Tests for read, template and blocking endpoints."""

    def test_get_messages(self, service, recorder):
        service.get_messages("+15550001", limit=10)

        request = recorder.requests[-1]
        assert request.url.path == "/v21.0/12345/messages"
        assert request.url.params["phone_number"] == "+15550001"
        assert request.url.params["limit"] == "10"

    def test_get_chats(self, service, recorder):
        service.get_chats()
        assert recorder.requests[-1].url.path == "/v21.0/12345/conversations"

    def test_delete_template_sends_body(self, service, recorder):
        service.delete_message_template("welcome")

        request = recorder.requests[-1]
        assert request.method == "DELETE"
        assert request.url.path == "/v21.0/12345/message_templates"
        assert recorder.last_json == {"name": "welcome"}

    def test_block_and_unblock(self, service, recorder):
        service.block_user("+15550001")
        assert recorder.requests[-1].method == "POST"
        service.unblock_user("+15550001")
        assert recorder.requests[-1].method == "DELETE"
        assert recorder.last_json == {"phone_number": "+15550001"}

    def test_create_template(self, service, recorder):
        service.create_message_template("promo", "en_US", "MARKETING", [{"type": "BODY", "text": "Hi"}])
        assert recorder.last_json["category"] == "MARKETING"


class TestFactory:
    """Tests for create_whatsapp_service."""

    def test_missing_credentials(self):
        with pytest.raises(ConfigError) as exc_info:
            create_whatsapp_service(Config())
        assert exc_info.value.message == "WhatsApp Business API credentials not configured"

    def test_from_config(self):
        config = Config(whatsapp=WhatsAppConfig(phone_number_id="9", access_token="t", api_version="v20.0"))
        service = create_whatsapp_service(config)
        assert service.base_url == "https://graph.facebook.com/v20.0"
        service.close()
