"""
Abstract base class for mailbox providers.

Defines the list / detail / test contract that the Gmail, Microsoft Graph
and IMAP adapters implement, so callers get the same MessageSummary and
MessageDetail shapes from every backend.
"""

import logging
from abc import ABC, abstractmethod
from typing import List

from core.errors import ConfigurationMissing, ProviderError
from core.models import (
    ConnectionTestResult,
    Credentials,
    IMAPCredentials,
    MessageDetail,
    MessageSummary,
    OAuthCredentials,
)

logger = logging.getLogger(__name__)

# Bounds applied to every listing request
DEFAULT_MAX_RESULTS = 20
MAX_RESULTS_LIMIT = 50


def clamp_max_results(max_results: int) -> int:
    """Clamp a requested listing size into 1..MAX_RESULTS_LIMIT."""
    return min(max(int(max_results), 1), MAX_RESULTS_LIMIT)


class EmailProvider(ABC):
    """
    Abstract base class for provider adapters.

    Adapters hold configuration only. Credentials are passed to every call
    and no connection or session outlives the call that opened it.

    Example:
        provider = GmailProvider(config.gmail, client=oauth_client)
        for summary in provider.list_messages(creds, max_results=25):
            print(summary.sender, summary.subject)
        detail = provider.get_message_detail(creds, summary.id)

    Attributes:
        name: Provider identifier
    """

    name: str = "abstract"

    @abstractmethod
    def list_messages(self, creds: Credentials, max_results: int = DEFAULT_MAX_RESULTS) -> List[MessageSummary]:
        """
        List the most recent inbox messages, newest first.

        Args:
            creds: Credentials for this call
            max_results: Maximum number of messages to return

        Returns:
            List of MessageSummary ordered newest first

        Raises:
            ProviderError: Any failure kind; a failure fetching one message
                fails the whole listing
        """
        pass

    @abstractmethod
    def get_message_detail(self, creds: Credentials, message_id: str) -> MessageDetail:
        """
        Fetch a single message with a plain-text body.

        Args:
            creds: Credentials for this call
            message_id: Provider-native message identifier

        Returns:
            MessageDetail for the message

        Raises:
            NotFound: The message does not exist
            ProviderError: Any other failure kind
        """
        pass

    @abstractmethod
    def check_connection(self, creds: Credentials) -> None:
        """
        Verify the credentials reach an authenticated state.

        Raises:
            ProviderError: If the provider cannot be reached or rejects them
        """
        pass

    def test_connection(self, creds: Credentials) -> ConnectionTestResult:
        """
        Verify the provider connection is usable.

        Returns:
            ConnectionTestResult; failures carry the error message and kind
        """
        try:
            self.check_connection(creds)
        except ProviderError as e:
            logger.info(f"{self.name} connection test failed ({e.kind}): {e}")
            return ConnectionTestResult(success=False, error=str(e), kind=e.kind)
        return ConnectionTestResult(success=True)


def require_oauth(creds: Credentials, provider: str) -> OAuthCredentials:
    """Ensure an OAuth provider was handed OAuth credentials."""
    if not isinstance(creds, OAuthCredentials):
        raise ConfigurationMissing(f"{provider} requires OAuth credentials", provider=provider)
    return creds


def require_imap(creds: Credentials, provider: str) -> IMAPCredentials:
    """Ensure the IMAP provider was handed IMAP credentials."""
    if not isinstance(creds, IMAPCredentials):
        raise ConfigurationMissing(f"{provider} requires IMAP credentials", provider=provider)
    return creds
