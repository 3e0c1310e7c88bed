"""
Mailbox provider implementations.

This package contains adapters for different mail services, all implementing
the abstract EmailProvider interface, plus the three entry points callers
use: list_messages(), get_message_detail() and test_connection().

Supported Providers:
    - GmailProvider: Gmail API (google-api-python-client)
    - OutlookProvider: Microsoft Graph API (requests + msal)
    - IMAPProvider: Generic IMAP (imaplib)
"""

import logging
from typing import List, Optional

from core.config import Config
from core.models import (
    GMAIL,
    IMAP,
    MICROSOFT,
    ConnectionTestResult,
    Credentials,
    MessageDetail,
    MessageSummary,
    OAuthClientConfig,
    normalize_provider,
)
from providers.base import (
    DEFAULT_MAX_RESULTS,
    MAX_RESULTS_LIMIT,
    EmailProvider,
    clamp_max_results,
)

logger = logging.getLogger(__name__)

__all__ = [
    "EmailProvider",
    "DEFAULT_MAX_RESULTS",
    "MAX_RESULTS_LIMIT",
    "get_provider",
    "list_messages",
    "get_message_detail",
    "test_connection",
]


def get_provider(
    provider_name: str,
    config: Optional[Config] = None,
    client: Optional[OAuthClientConfig] = None,
) -> EmailProvider:
    """
    Factory function to create the appropriate provider.

    Provider modules are imported lazily so an IMAP-only caller does not
    need the Google or Microsoft client libraries loaded.

    Args:
        provider_name: One of 'gmail', 'microsoft' (or 'outlook'), 'imap'
        config: Loaded configuration (defaults used when omitted)
        client: OAuth app registration for Gmail/Microsoft refresh tokens

    Returns:
        Configured EmailProvider instance
    """
    config = config or Config()
    provider_name = normalize_provider(provider_name)

    if provider_name == GMAIL:
        from providers.gmail import GmailProvider
        return GmailProvider(config.gmail, client=client)

    elif provider_name == MICROSOFT:
        from providers.outlook import OutlookProvider
        return OutlookProvider(config.outlook, client=client)

    elif provider_name == IMAP:
        from providers.imap import IMAPProvider
        return IMAPProvider(config.imap)

    raise ValueError(f"Unknown provider: {provider_name}")


def _as_provider(provider, config: Optional[Config]) -> EmailProvider:
    if isinstance(provider, EmailProvider):
        return provider
    return get_provider(provider, config)


def list_messages(
    provider,
    credentials: Credentials,
    max_results: int = DEFAULT_MAX_RESULTS,
    config: Optional[Config] = None,
) -> List[MessageSummary]:
    """
    List the newest inbox messages for a provider.

    Args:
        provider: Provider name or EmailProvider instance
        credentials: Resolved credentials for this call
        max_results: Requested size, clamped to 1..MAX_RESULTS_LIMIT
        config: Configuration used when provider is a name

    Returns:
        MessageSummary list, newest first
    """
    return _as_provider(provider, config).list_messages(credentials, clamp_max_results(max_results))


def get_message_detail(
    provider,
    credentials: Credentials,
    message_id: str,
    config: Optional[Config] = None,
) -> MessageDetail:
    """Fetch one message with a plain-text body."""
    return _as_provider(provider, config).get_message_detail(credentials, message_id)


def test_connection(
    provider,
    credentials: Credentials,
    config: Optional[Config] = None,
) -> ConnectionTestResult:
    """Check that the credentials reach an authenticated state."""
    return _as_provider(provider, config).test_connection(credentials)


# Not a test for pytest to collect when imported into test modules
test_connection.__test__ = False
