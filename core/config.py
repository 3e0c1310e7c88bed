"""
Multi-provider configuration system.

Loads configuration from a YAML file and an environment mapping with proper
precedence: env > config file > defaults. The environment is passed in
explicitly so callers (and tests) control exactly which values are seen.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

# Default config file locations (checked in order)
DEFAULT_CONFIG_PATHS = [
    Path("~/.config/unified_inbox/config.yaml").expanduser(),
    Path("~/.unified_inbox.yaml").expanduser(),
    Path("unified_inbox.yaml"),
]

CONFIG_PATH_ENV = "MAIL_CORE_CONFIG"
ENV_PREFIX = "MAIL_CORE_"

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class GmailConfig:
    """Gmail API (OAuth2) settings and environment-level default token."""
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    refresh_token: Optional[str] = None
    scopes: List[str] = field(
        default_factory=lambda: ["https://www.googleapis.com/auth/gmail.readonly"]
    )
    token_uri: str = "https://oauth2.googleapis.com/token"
    request_timeout: float = 30.0
    max_workers: int = 8


@dataclass
class OutlookConfig:
    """Microsoft Graph (OAuth2) settings and environment-level default token."""
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: str = "http://localhost:7000/api/auth/microsoft/callback"
    authority: str = "https://login.microsoftonline.com/common"
    refresh_token: Optional[str] = None
    scopes: List[str] = field(default_factory=lambda: [
        "https://graph.microsoft.com/Mail.Read",
        "https://graph.microsoft.com/Mail.ReadWrite",
    ])
    request_timeout: float = 30.0


@dataclass
class IMAPConfig:
    """
    IMAP settings.

    verify_tls=False disables certificate and hostname validation. It exists
    for self-hosted servers with self-signed certificates and must be turned
    on explicitly.
    """
    host: Optional[str] = None
    port: int = 993
    user: Optional[str] = None
    password: Optional[str] = None
    use_tls: bool = True
    verify_tls: bool = True
    timeout: float = 10.0
    connection_test_timeout: float = 15.0


@dataclass
class Config:
    """
    Main configuration container.

    Holds settings for all providers and general retrieval options.
    """
    default_provider: str = "gmail"
    log_level: str = "INFO"
    max_results: int = 20
    accounts_file: Optional[str] = None

    gmail: GmailConfig = field(default_factory=GmailConfig)
    outlook: OutlookConfig = field(default_factory=OutlookConfig)
    imap: IMAPConfig = field(default_factory=IMAPConfig)


def load_yaml_config(path: Path) -> Dict[str, Any]:
    """Load configuration from a YAML file."""
    if not path.exists():
        return {}

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {path}: top level is not a mapping")
        return {}
    logger.info(f"Loaded config from {path}")
    return data


def find_config_file(environ: Optional[Mapping[str, str]] = None) -> Optional[Path]:
    """Find the first existing config file."""
    environ = os.environ if environ is None else environ

    env_path = environ.get(CONFIG_PATH_ENV)
    if env_path:
        path = Path(env_path).expanduser()
        if path.exists():
            return path

    for path in DEFAULT_CONFIG_PATHS:
        if path.exists():
            return path

    return None


def load_config(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    env_prefix: str = ENV_PREFIX,
) -> Config:
    """
    Load configuration with proper precedence.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Defaults

    Args:
        config_path: Explicit config file path (optional)
        environ: Environment mapping (defaults to os.environ)
        env_prefix: Prefix for the general environment variables

    Returns:
        Populated Config object
    """
    environ = os.environ if environ is None else environ
    config = Config()

    if config_path is None:
        config_path = find_config_file(environ)

    if config_path:
        _apply_yaml_config(config, load_yaml_config(Path(config_path)))

    _apply_env_config(config, environ, env_prefix)
    return config


def _apply_section(target: Any, data: Dict[str, Any]) -> None:
    """Copy known keys from a YAML mapping onto a config dataclass."""
    known = {f.name for f in fields(target)}
    for key, value in data.items():
        if key in known:
            setattr(target, key, value)
        else:
            logger.warning(f"Unknown config key ignored: {key}")


def _apply_yaml_config(config: Config, data: Dict[str, Any]) -> None:
    """Apply YAML configuration data to config object."""
    if not data:
        return

    for key in ("default_provider", "log_level", "max_results", "accounts_file"):
        if key in data:
            setattr(config, key, data[key])

    for section in ("gmail", "outlook", "imap"):
        if section in data and isinstance(data[section], dict):
            _apply_section(getattr(config, section), data[section])


def _as_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _apply_env_config(config: Config, environ: Mapping[str, str], prefix: str) -> None:
    """Apply environment variable overrides to config object."""
    # General settings
    if environ.get(f"{prefix}DEFAULT_PROVIDER"):
        config.default_provider = environ[f"{prefix}DEFAULT_PROVIDER"]
    if environ.get(f"{prefix}LOG_LEVEL"):
        config.log_level = environ[f"{prefix}LOG_LEVEL"]
    if environ.get(f"{prefix}MAX_RESULTS"):
        config.max_results = int(environ[f"{prefix}MAX_RESULTS"])
    if environ.get(f"{prefix}ACCOUNTS_FILE"):
        config.accounts_file = environ[f"{prefix}ACCOUNTS_FILE"]
    if environ.get(f"{prefix}REQUEST_TIMEOUT"):
        timeout = float(environ[f"{prefix}REQUEST_TIMEOUT"])
        config.gmail.request_timeout = timeout
        config.outlook.request_timeout = timeout

    # Gmail
    if environ.get("GOOGLE_CLIENT_ID"):
        config.gmail.client_id = environ["GOOGLE_CLIENT_ID"]
    if environ.get("GOOGLE_CLIENT_SECRET"):
        config.gmail.client_secret = environ["GOOGLE_CLIENT_SECRET"]
    if environ.get("GOOGLE_REDIRECT_URI"):
        config.gmail.redirect_uri = environ["GOOGLE_REDIRECT_URI"]
    if environ.get("GOOGLE_REFRESH_TOKEN"):
        config.gmail.refresh_token = environ["GOOGLE_REFRESH_TOKEN"]

    # Outlook / Microsoft Graph
    if environ.get("MICROSOFT_CLIENT_ID"):
        config.outlook.client_id = environ["MICROSOFT_CLIENT_ID"]
    if environ.get("MICROSOFT_CLIENT_SECRET"):
        config.outlook.client_secret = environ["MICROSOFT_CLIENT_SECRET"]
    if environ.get("MICROSOFT_REDIRECT_URI"):
        config.outlook.redirect_uri = environ["MICROSOFT_REDIRECT_URI"]
    if environ.get("MICROSOFT_REFRESH_TOKEN"):
        config.outlook.refresh_token = environ["MICROSOFT_REFRESH_TOKEN"]

    # IMAP
    if environ.get("IMAP_HOST"):
        config.imap.host = environ["IMAP_HOST"]
    if environ.get("IMAP_PORT"):
        config.imap.port = int(environ["IMAP_PORT"])
    if environ.get("IMAP_USER"):
        config.imap.user = environ["IMAP_USER"]
    if environ.get("IMAP_PASS"):
        config.imap.password = environ["IMAP_PASS"]
    if environ.get("IMAP_USE_TLS"):
        config.imap.use_tls = _as_bool(environ["IMAP_USE_TLS"])
    if environ.get(f"{prefix}IMAP_INSECURE_TLS"):
        config.imap.verify_tls = not _as_bool(environ[f"{prefix}IMAP_INSECURE_TLS"])
    if environ.get(f"{prefix}IMAP_TIMEOUT"):
        config.imap.timeout = float(environ[f"{prefix}IMAP_TIMEOUT"])


def create_sample_config(path: Optional[Path] = None) -> str:
    """
    Generate a sample configuration file.

    Args:
        path: Optional path to write the config file

    Returns:
        Sample YAML configuration string
    """
    sample = '''# Unified inbox configuration
# Place this file at ~/.config/unified_inbox/config.yaml

# Provider used by the CLI when --provider is not given (gmail, microsoft, imap)
default_provider: gmail

# Logging level (DEBUG, INFO, WARNING, ERROR)
log_level: INFO

# Default number of inbox messages to list (1-50)
max_results: 20

# Optional JSON file with stored accounts (checked before the defaults below)
# accounts_file: ~/.config/unified_inbox/accounts.json

# Gmail API settings
gmail:
  # client_id: "xxxx.apps.googleusercontent.com"
  # client_secret: "op://Private/Gmail OAuth/client_secret"
  # redirect_uri: "http://localhost:7000/api/auth/gmail/callback"
  # refresh_token: "op://Private/Gmail OAuth/refresh_token"
  request_timeout: 30
  max_workers: 8

# Microsoft Graph (Outlook.com / Microsoft 365) settings
outlook:
  # client_id: "your-azure-app-client-id"
  # client_secret: "op://Private/Azure App/client_secret"
  authority: "https://login.microsoftonline.com/common"
  request_timeout: 30

# IMAP settings
imap:
  # host: imap.example.com
  port: 993
  # user: you@example.com
  # password: "op://Private/IMAP/password"
  use_tls: true
  # Set to false only for servers with self-signed certificates.
  # Disables certificate and hostname checks.
  verify_tls: true
  timeout: 10
  connection_test_timeout: 15
'''

    if path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(sample)
        logger.info(f"Created sample config at {path}")

    return sample
