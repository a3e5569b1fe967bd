"""
Test Configuration Module
========================

Unit tests for configuration loading and validation.
"""

import os
import pytest
import yaml
from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import (
    Config, WhatsAppConfig, ChatbotConfig, CampaignConfig,
    AuthConfig, UIConfig, load_config, save_config, _load_env_file
)
from core.exceptions import ConfigError


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Isolated configuration and data directories."""
    monkeypatch.setenv("LEAD_AGENT_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("LEAD_AGENT_DATA_DIR", str(tmp_path / "data"))
    for var in ("WHATSAPP_PHONE_NUMBER_ID", "WHATSAPP_ACCESS_TOKEN", "WHATSAPP_API_VERSION"):
        monkeypatch.delenv(var, raising=False)
    (tmp_path / "config").mkdir()
    return tmp_path / "config"


class TestWhatsAppConfig:
    """Tests for WhatsAppConfig."""

    def test_default_values(self):
        """Test default configuration values."""
        config = WhatsAppConfig()
        assert config.api_version == "v21.0"
        assert config.is_configured is False

    def test_is_configured(self):
        config = WhatsAppConfig(phone_number_id="123", access_token="token")
        assert config.is_configured is True

    def test_validation_invalid_version(self):
        """Test invalid API version raises error."""
        with pytest.raises(ConfigError):
            WhatsAppConfig(api_version="21").validate()


class TestChatbotConfig:
    """Tests for ChatbotConfig."""

    def test_default_values(self):
        """Test default configuration values."""
        config = ChatbotConfig()
        assert config.case_sensitive is True
        assert config.min_delay_seconds == 10
        assert config.delay_policy == "clamp"

    def test_validation_invalid_policy(self):
        """Test unknown delay policy raises error."""
        with pytest.raises(ConfigError):
            ChatbotConfig(delay_policy="ignore").validate()

    def test_validation(self):
        """Test configuration validation."""
        ChatbotConfig(delay_policy="reject").validate()  # Should not raise


class TestOtherSections:
    """Tests for the smaller sections."""

    def test_invalid_admin_email(self):
        with pytest.raises(ConfigError):
            AuthConfig(admin_emails=["not-an-email"]).validate()

    def test_invalid_port(self):
        with pytest.raises(ConfigError):
            UIConfig(web_port=70000).validate()

    def test_invalid_media_size(self):
        with pytest.raises(ConfigError):
            CampaignConfig(max_media_bytes=0).validate()


class TestConfig:
    """Tests for main Config class."""

    def test_default_values(self):
        """Test default configuration values."""
        config = Config()
        assert config.app_name == "WhatsApp Lead Agent"
        assert config.whatsapp is not None
        assert config.chatbot is not None

    def test_to_dict_excludes_token(self):
        """Test conversion to dictionary drops the access token."""
        config = Config(whatsapp=WhatsAppConfig(phone_number_id="1", access_token="secret"))
        d = config.to_dict()
        assert "app_name" in d
        assert d["whatsapp"]["phone_number_id"] == "1"
        assert "access_token" not in d["whatsapp"]

    def test_paths(self):
        config = Config(data_dir="/srv/agent")
        assert config.db_path == os.path.join("/srv/agent", "lead_agent.db")
        assert config.media_dir == os.path.join("/srv/agent", "media")


class TestLoadConfig:
    """Tests for loading configuration from YAML and the environment."""

    def test_yaml_values(self, config_dir):
        """Test YAML sections are applied."""
        (config_dir / "config.yaml").write_text(yaml.dump({
            "chatbot": {"case_sensitive": False, "delay_policy": "reject"},
            "auth": {"admin_emails": ["admin@example.com"]},
        }))

        config = load_config()

        assert config.chatbot.case_sensitive is False
        assert config.chatbot.delay_policy == "reject"
        assert config.auth.admin_emails == ["admin@example.com"]

    def test_section_must_be_mapping(self, config_dir):
        (config_dir / "config.yaml").write_text(yaml.dump({"chatbot": ["nope"]}))
        with pytest.raises(ConfigError):
            load_config()

    def test_env_overrides(self, config_dir, monkeypatch):
        """Test environment variables override YAML values."""
        (config_dir / "config.yaml").write_text(yaml.dump({"ui": {"web_port": 9000}}))
        monkeypatch.setenv("LEAD_AGENT_UI_WEB_PORT", "9100")
        monkeypatch.setenv("WHATSAPP_PHONE_NUMBER_ID", "555")
        monkeypatch.setenv("WHATSAPP_ACCESS_TOKEN", "token")
        monkeypatch.setenv("LEAD_AGENT_AUTH_ADMIN_EMAILS", "a@example.com, b@example.com")

        config = load_config()

        assert config.ui.web_port == 9100
        assert config.whatsapp.is_configured
        assert config.auth.admin_emails == ["a@example.com", "b@example.com"]

    def test_invalid_env_value(self, config_dir, monkeypatch):
        monkeypatch.setenv("LEAD_AGENT_UI_WEB_PORT", "eighty")
        with pytest.raises(ConfigError):
            load_config()

    def test_env_file_does_not_override(self, tmp_path, monkeypatch):
        """Test .env values never replace existing variables."""
        monkeypatch.setenv("LEAD_AGENT_TEST_EXISTING", "original")
        monkeypatch.setenv("LEAD_AGENT_TEST_NEW", "placeholder")
        monkeypatch.delenv("LEAD_AGENT_TEST_NEW")

        env_file = tmp_path / ".env"
        env_file.write_text("# comment\nLEAD_AGENT_TEST_EXISTING=changed\nLEAD_AGENT_TEST_NEW=value\n")

        _load_env_file(env_file)

        assert os.environ["LEAD_AGENT_TEST_EXISTING"] == "original"
        assert os.environ["LEAD_AGENT_TEST_NEW"] == "value"

    def test_save_and_load(self, config_dir):
        """Test saved configuration loads back."""
        config = load_config()
        config.chatbot.min_delay_seconds = 15
        config.whatsapp.access_token = "secret"
        save_config(config)

        saved = yaml.safe_load((config_dir / "config.yaml").read_text())
        assert "access_token" not in saved["whatsapp"]

        assert load_config().chatbot.min_delay_seconds == 15
