"""
Configuration Management - YAML-based configuration with environment overrides
=============================================================================

This module handles all configuration aspects including:
- Loading from YAML files
- Environment variable overrides
- Default values
- Configuration validation
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, List
from dataclasses import dataclass, field, asdict

from .exceptions import ConfigError


DELAY_POLICIES = ("clamp", "reject")


@dataclass
class WhatsAppConfig:
    """
    WhatsApp Business Cloud API configuration.

    Credentials are normally supplied through the environment
    (WHATSAPP_PHONE_NUMBER_ID / WHATSAPP_ACCESS_TOKEN).
    """
    phone_number_id: str = ""
    access_token: str = ""
    api_version: str = "v21.0"
    base_url: str = "https://graph.facebook.com"
    timeout: int = 30

    @property
    def is_configured(self) -> bool:
        return bool(self.phone_number_id and self.access_token)

    def validate(self) -> None:
        """Validate provider configuration."""
        if not self.api_version.startswith("v"):
            raise ConfigError(f"Invalid WhatsApp API version: {self.api_version}")

        if self.timeout < 1:
            raise ConfigError(f"timeout must be at least 1 second, got {self.timeout}")


@dataclass
class ChatbotConfig:
    """
    Auto-reply rule evaluation settings.

    Controls how inbound messages are compared against an account's
    rule table and how rules violating the delay minimum are treated.
    """
    # Default toggle state for newly created accounts
    auto_reply_default: bool = False

    # Matching
    case_sensitive: bool = True

    # Delay enforcement
    min_delay_seconds: int = 10
    delay_policy: str = "clamp"  # clamp, reject

    # Platform tag used when an inbound payload carries none
    default_platform: str = "other"

    def validate(self) -> None:
        """Validate chatbot configuration."""
        if self.delay_policy not in DELAY_POLICIES:
            raise ConfigError(f"Invalid delay policy: {self.delay_policy}")

        if self.min_delay_seconds < 0:
            raise ConfigError("min_delay_seconds cannot be negative")


@dataclass
class LeadConfig:
    """Lead capture settings."""
    default_source: str = "other"

    def validate(self) -> None:
        if not self.default_source:
            raise ConfigError("default_source cannot be empty")


@dataclass
class CampaignConfig:
    """
    Campaign settings.

    Media uploaded with a campaign is written to ``media_dir`` and
    exposed under ``public_base_url``/media.
    """
    media_dir: str = ""  # Defaults to <data_dir>/media
    public_base_url: str = "http://127.0.0.1:8080"
    time_zone: str = "GMT+00:00"
    max_media_bytes: int = 16 * 1024 * 1024

    def validate(self) -> None:
        if self.max_media_bytes < 1:
            raise ConfigError("max_media_bytes must be at least 1")


@dataclass
class AuthConfig:
    """
    Authorization settings.

    Accounts whose email is listed in ``admin_emails`` hold the admin
    capability under the default access policy.
    """
    admin_emails: List[str] = field(default_factory=list)

    def validate(self) -> None:
        for email in self.admin_emails:
            if "@" not in email:
                raise ConfigError(f"Invalid admin email: {email}")


@dataclass
class UIConfig:
    """Web server configuration."""
    web_host: str = "127.0.0.1"
    web_port: int = 8080
    web_debug: bool = False

    def validate(self) -> None:
        if self.web_port < 1 or self.web_port > 65535:
            raise ConfigError(f"Invalid web port: {self.web_port}")


@dataclass
class Config:
    """
    Main configuration container.

    Aggregates all configuration sections into a single object
    and provides methods for loading, saving, and validating.
    """
    app_name: str = "WhatsApp Lead Agent"
    version: str = "1.0.0"
    debug: bool = False

    whatsapp: WhatsAppConfig = field(default_factory=WhatsAppConfig)
    chatbot: ChatbotConfig = field(default_factory=ChatbotConfig)
    leads: LeadConfig = field(default_factory=LeadConfig)
    campaign: CampaignConfig = field(default_factory=CampaignConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    ui: UIConfig = field(default_factory=UIConfig)

    # Paths (set at runtime)
    config_dir: str = ""
    data_dir: str = ""
    log_dir: str = ""

    SECTIONS = ("whatsapp", "chatbot", "leads", "campaign", "auth", "ui")

    @property
    def db_path(self) -> str:
        return os.path.join(self.data_dir, "lead_agent.db")

    @property
    def media_dir(self) -> str:
        return self.campaign.media_dir or os.path.join(self.data_dir, "media")

    def validate(self) -> None:
        """
        Validate all configuration sections.

        Raises:
            ConfigError: If any configuration section is invalid
        """
        for section in self.SECTIONS:
            getattr(self, section).validate()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary (credentials excluded)."""
        data = {
            "app_name": self.app_name,
            "version": self.version,
            "debug": self.debug,
        }
        for section in self.SECTIONS:
            data[section] = asdict(getattr(self, section))
        data["whatsapp"].pop("access_token", None)
        return data


def get_default_config_dir() -> Path:
    """
    Get the default configuration directory path.

    Returns:
        Path to the configuration directory
    """
    if "LEAD_AGENT_CONFIG_DIR" in os.environ:
        return Path(os.environ["LEAD_AGENT_CONFIG_DIR"])

    if "XDG_CONFIG_HOME" in os.environ:
        return Path(os.environ["XDG_CONFIG_HOME"]) / "wa-lead-agent"

    return Path.home() / ".config" / "wa-lead-agent"


def get_default_data_dir() -> Path:
    """
    Get the default data directory path.

    Returns:
        Path to the data directory
    """
    if "LEAD_AGENT_DATA_DIR" in os.environ:
        return Path(os.environ["LEAD_AGENT_DATA_DIR"])

    if "XDG_DATA_HOME" in os.environ:
        return Path(os.environ["XDG_DATA_HOME"]) / "wa-lead-agent"

    return Path.home() / ".local" / "share" / "wa-lead-agent"


def load_config(config_path: Optional[str] = None, load_env: bool = True) -> Config:
    """
    Load configuration from YAML file with environment variable overrides.

    This function loads configuration in the following order:
    1. Default values from dataclass
    2. Values from YAML file
    3. Environment variable overrides

    Args:
        config_path: Path to configuration file (optional)
        load_env: Whether to load environment variable overrides

    Returns:
        Config object with loaded values

    Raises:
        ConfigError: If configuration is invalid or cannot be loaded
    """
    config = Config()

    config.config_dir = str(get_default_config_dir())
    config.data_dir = str(get_default_data_dir())
    config.log_dir = str(Path(config.data_dir) / "logs")

    if load_env:
        _load_env_file(Path(config.config_dir) / ".env")

    if config_path:
        yaml_path = Path(config_path)
    else:
        yaml_path = Path(config.config_dir) / "config.yaml"

    if yaml_path.exists():
        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}

            _apply_yaml_config(config, yaml_config)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file: {e}", {"path": str(yaml_path)})
        except IOError as e:
            raise ConfigError(f"Failed to read config file: {e}", {"path": str(yaml_path)})

    if load_env:
        _apply_env_overrides(config)

    config.validate()

    return config


def _load_env_file(env_file: Path) -> None:
    """
    Load KEY=VALUE lines from a .env file into the environment.

    Existing environment variables are never overridden.
    """
    if not env_file.exists():
        return

    try:
        with open(env_file, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    key = key.strip()
                    if key and value and key not in os.environ:
                        os.environ[key] = value.strip()
    except IOError as e:
        raise ConfigError(f"Failed to read env file: {e}", {"path": str(env_file)})


def _apply_yaml_config(config: Config, yaml_config: Dict[str, Any]) -> None:
    """
    Apply YAML configuration values to Config object.

    Unknown keys are ignored.

    Args:
        config: Config object to update
        yaml_config: Dictionary of configuration values from YAML
    """
    for key in ("app_name", "version", "debug"):
        if key in yaml_config:
            setattr(config, key, yaml_config[key])

    for section in Config.SECTIONS:
        section_cfg = yaml_config.get(section) or {}
        if not isinstance(section_cfg, dict):
            raise ConfigError(f"Config section '{section}' must be a mapping")

        section_obj = getattr(config, section)
        for key, value in section_cfg.items():
            if hasattr(section_obj, key):
                setattr(section_obj, key, value)


def _to_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


def _to_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _apply_env_overrides(config: Config) -> None:
    """
    Apply environment variable overrides to Config object.

    Environment variables follow the pattern: LEAD_AGENT_SECTION_KEY.
    The provider's own variable names are honoured as well.

    Args:
        config: Config object to update
    """
    env_mappings = {
        # Provider credentials
        "WHATSAPP_PHONE_NUMBER_ID": ("whatsapp", "phone_number_id"),
        "WHATSAPP_ACCESS_TOKEN": ("whatsapp", "access_token"),
        "WHATSAPP_API_VERSION": ("whatsapp", "api_version"),
        "LEAD_AGENT_WHATSAPP_TIMEOUT": ("whatsapp", "timeout", int),

        # Chatbot settings
        "LEAD_AGENT_CHATBOT_CASE_SENSITIVE": ("chatbot", "case_sensitive", _to_bool),
        "LEAD_AGENT_CHATBOT_DELAY_POLICY": ("chatbot", "delay_policy"),
        "LEAD_AGENT_CHATBOT_MIN_DELAY_SECONDS": ("chatbot", "min_delay_seconds", int),
        "LEAD_AGENT_CHATBOT_AUTO_REPLY_DEFAULT": ("chatbot", "auto_reply_default", _to_bool),

        # Leads and campaigns
        "LEAD_AGENT_LEADS_DEFAULT_SOURCE": ("leads", "default_source"),
        "LEAD_AGENT_CAMPAIGN_MEDIA_DIR": ("campaign", "media_dir"),
        "LEAD_AGENT_CAMPAIGN_PUBLIC_BASE_URL": ("campaign", "public_base_url"),

        # Authorization
        "LEAD_AGENT_AUTH_ADMIN_EMAILS": ("auth", "admin_emails", _to_list),

        # UI settings
        "LEAD_AGENT_UI_WEB_HOST": ("ui", "web_host"),
        "LEAD_AGENT_UI_WEB_PORT": ("ui", "web_port", int),
        "LEAD_AGENT_UI_WEB_DEBUG": ("ui", "web_debug", _to_bool),
    }

    for env_var, mapping in env_mappings.items():
        value = os.environ.get(env_var)
        if value is None:
            continue

        section, key = mapping[0], mapping[1]
        converter = mapping[2] if len(mapping) > 2 else str

        try:
            converted = converter(value)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {env_var}: {e}")

        setattr(getattr(config, section), key, converted)


def save_config(config: Config, config_path: Optional[str] = None) -> None:
    """
    Save configuration to YAML file.

    The access token is never written; keep it in the environment or
    the config directory's .env file.

    Args:
        config: Config object to save
        config_path: Path to save configuration (optional)

    Raises:
        ConfigError: If configuration cannot be saved
    """
    if config_path:
        yaml_path = Path(config_path)
    else:
        yaml_path = Path(config.config_dir) / "config.yaml"

    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
    except IOError as e:
        raise ConfigError(f"Failed to save config file: {e}", {"path": str(yaml_path)})


def create_default_config(config_dir: Optional[str] = None) -> Config:
    """
    Create a default configuration file with sensible defaults.

    Args:
        config_dir: Directory to create configuration in (optional)

    Returns:
        Config object with default values
    """
    config = Config()

    if config_dir:
        config.config_dir = config_dir
        config.data_dir = str(Path(config_dir) / "data")
        config.log_dir = str(Path(config_dir) / "logs")
    else:
        config.config_dir = str(get_default_config_dir())
        config.data_dir = str(get_default_data_dir())
        config.log_dir = str(Path(config.data_dir) / "logs")

    Path(config.config_dir).mkdir(parents=True, exist_ok=True)
    Path(config.data_dir).mkdir(parents=True, exist_ok=True)
    Path(config.log_dir).mkdir(parents=True, exist_ok=True)

    save_config(config)

    return config
