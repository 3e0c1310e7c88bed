"""
Core retrieval module.

Provides the shared data models, error kinds, configuration and the
normalization primitives (headers, MIME body selection, HTML reduction)
used across all mailbox providers (Gmail, Outlook, IMAP).
"""

from core.models import (
    MessageSummary,
    MessageDetail,
    OAuthCredentials,
    IMAPCredentials,
    MimePart,
    BodyCandidate,
    ConnectionTestResult,
    NO_SUBJECT,
    UNKNOWN_SENDER,
    UNKNOWN_ADDRESS,
)
from core.errors import (
    ProviderError,
    ConfigurationMissing,
    AuthenticationFailed,
    NotFound,
    OperationTimeout,
    MalformedResponse,
    TransportError,
)
from core.headers import parse_address, parse_header_block, decode_header_value
from core.mime import select_body
from core.html import html_to_text
from core.config import Config, load_config, create_sample_config

__all__ = [
    "MessageSummary",
    "MessageDetail",
    "OAuthCredentials",
    "IMAPCredentials",
    "MimePart",
    "BodyCandidate",
    "ConnectionTestResult",
    "NO_SUBJECT",
    "UNKNOWN_SENDER",
    "UNKNOWN_ADDRESS",
    "ProviderError",
    "ConfigurationMissing",
    "AuthenticationFailed",
    "NotFound",
    "OperationTimeout",
    "MalformedResponse",
    "TransportError",
    "parse_address",
    "parse_header_block",
    "decode_header_value",
    "select_body",
    "html_to_text",
    "Config",
    "load_config",
    "create_sample_config",
]
