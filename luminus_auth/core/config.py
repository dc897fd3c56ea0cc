"""Provider and application configuration.

The provider constants default to the LumiNUS identity server. The CLI can
override them from a config.yaml file and environment variables; environment
variables take precedence over config file settings. The authorization flow
itself never reads files or the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_DIR = Path.home() / ".luminus-auth"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

ENV_PREFIX = "LUMINUS_AUTH_"

AUTH_BASE_URL = "https://luminus.nus.edu.sg"
DISCOVERY_PATH = "/v2/auth/.well-known/openid-configuration"
CLIENT_ID = "verso"
SCOPES = [
    "profile",
    "email",
    "role",
    "openid",
    "lms.read",
    "calendar.read",
    "lms.delete",
    "lms.write",
    "calendar.write",
    "gradebook.write",
    "offline_access",
]
RESPONSE_TYPE = "id_token token code"
REDIRECT_URI = "https://luminus.nus.edu.sg/auth/callback"
SESSION_COOKIE = "idsrv"


@dataclass
class ProviderSettings:
    """Identity provider endpoints and fixed authorization parameters."""

    base_url: str = AUTH_BASE_URL
    discovery_path: str = DISCOVERY_PATH
    client_id: str = CLIENT_ID
    scopes: list[str] = field(default_factory=lambda: list(SCOPES))
    response_type: str = RESPONSE_TYPE
    # Must be an absolute http(s) URL; a custom-scheme callback is rejected
    # when read back from the Location header
    redirect_uri: str = REDIRECT_URI
    session_cookie: str = SESSION_COOKIE
    timeout: float = 30.0
    verify_ssl: bool = True

    @property
    def scope(self) -> str:
        """Space-separated scope parameter value."""
        return " ".join(self.scopes)

    @property
    def discovery_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.discovery_path.lstrip('/')}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderSettings:
        """Create ProviderSettings from a dictionary."""
        scopes = data.get("scopes", SCOPES)
        if isinstance(scopes, str):
            scopes = scopes.split()
        return cls(
            base_url=data.get("base_url", AUTH_BASE_URL),
            discovery_path=data.get("discovery_path", DISCOVERY_PATH),
            client_id=data.get("client_id", CLIENT_ID),
            scopes=list(scopes),
            response_type=data.get("response_type", RESPONSE_TYPE),
            redirect_uri=data.get("redirect_uri", REDIRECT_URI),
            session_cookie=data.get("session_cookie", SESSION_COOKIE),
            timeout=float(data.get("timeout", 30.0)),
            verify_ssl=data.get("verify_ssl", True),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "base_url": self.base_url,
            "discovery_path": self.discovery_path,
            "client_id": self.client_id,
            "scopes": list(self.scopes),
            "response_type": self.response_type,
            "redirect_uri": self.redirect_uri,
            "session_cookie": self.session_cookie,
            "timeout": self.timeout,
            "verify_ssl": self.verify_ssl,
        }


@dataclass
class LoggingSettings:
    """Protocol logging settings."""

    level: str = "ERROR"
    trace: bool = False
    log_file: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingSettings:
        return cls(
            level=str(data.get("level", "ERROR")).upper(),
            trace=data.get("trace", False),
            log_file=Path(data["log_file"]) if data.get("log_file") else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "trace": self.trace,
            "log_file": str(self.log_file) if self.log_file else None,
        }


@dataclass
class AppConfig:
    """Main application configuration."""

    provider: ProviderSettings = field(default_factory=ProviderSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], config_path: Path | None = None) -> AppConfig:
        """Create AppConfig from a dictionary."""
        provider_data = data.get("provider", {})
        logging_data = data.get("logging", {})
        return cls(
            provider=ProviderSettings.from_dict(provider_data) if provider_data else ProviderSettings(),
            logging=LoggingSettings.from_dict(logging_data) if logging_data else LoggingSettings(),
            config_path=config_path,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider.to_dict(),
            "logging": self.logging.to_dict(),
        }


class ConfigError(Exception):
    """Raised when a config file exists but cannot be loaded."""


def _get_env_bool(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_env_float(key: str, default: float) -> float:
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load application configuration.

    Configuration is loaded in this order (later values override earlier):
    1. Default values
    2. config.yaml file (if exists)
    3. Environment variables

    Args:
        config_path: Path to config file. Uses default if not specified.

    Returns:
        AppConfig with merged settings.

    Raises:
        ConfigError: If the config file exists but is not valid YAML or
            holds values of the wrong type.
    """
    config = AppConfig()

    file_path = config_path or DEFAULT_CONFIG_FILE
    if file_path.exists():
        try:
            with open(file_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config file {file_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config file {file_path}: expected a mapping")
        try:
            config = AppConfig.from_dict(data, config_path=file_path)
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"Invalid config file {file_path}: {e}") from e

    provider = config.provider
    if os.environ.get(f"{ENV_PREFIX}BASE_URL"):
        provider.base_url = os.environ[f"{ENV_PREFIX}BASE_URL"]

    if os.environ.get(f"{ENV_PREFIX}CLIENT_ID"):
        provider.client_id = os.environ[f"{ENV_PREFIX}CLIENT_ID"]

    if os.environ.get(f"{ENV_PREFIX}REDIRECT_URI"):
        provider.redirect_uri = os.environ[f"{ENV_PREFIX}REDIRECT_URI"]

    provider.timeout = _get_env_float(f"{ENV_PREFIX}TIMEOUT", provider.timeout)
    provider.verify_ssl = _get_env_bool(f"{ENV_PREFIX}VERIFY_SSL", provider.verify_ssl)

    if os.environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
        config.logging.level = os.environ[f"{ENV_PREFIX}LOG_LEVEL"].upper()

    config.logging.trace = _get_env_bool(f"{ENV_PREFIX}LOG_TRACE", config.logging.trace)

    return config


def get_default_config_yaml() -> str:
    """Get the default config.yaml content as a string."""
    return """\
# luminus-auth Configuration File
# Environment variables override these settings (prefix: LUMINUS_AUTH_)

provider:
  # Identity provider origin; relative URLs resolve against it
  base_url: "https://luminus.nus.edu.sg"

  # OpenID Connect discovery document path under base_url
  discovery_path: "/v2/auth/.well-known/openid-configuration"

  client_id: "verso"

  # Absolute http(s) URL; custom schemes such as myapp:// are not supported
  redirect_uri: "https://luminus.nus.edu.sg/auth/callback"

  # Per-request timeout in seconds
  timeout: 30.0

  verify_ssl: true

logging:
  # ERROR, INFO, DEBUG or TRACE
  level: "ERROR"

  # TRACE logs passwords and tokens in clear text
  trace: false

  # log_file: ~/.luminus-auth/protocol.log
"""
