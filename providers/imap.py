"""
IMAP provider implementation.

Thin adapter over providers.imap_client: every call opens its own
connection, runs one operation and releases the connection.
"""

import logging
from typing import List, Optional

from core.config import IMAPConfig
from core.models import IMAP, Credentials, MessageDetail, MessageSummary
from providers.base import DEFAULT_MAX_RESULTS, EmailProvider, require_imap
from providers.imap_client import ConnectionFactory, IMAPClient, check_login

logger = logging.getLogger(__name__)


class IMAPProvider(EmailProvider):
    """
    Generic IMAP provider.

    Example:
        provider = IMAPProvider(config.imap)
        creds = IMAPCredentials(host="imap.example.com", user="me", password="...")  # allow-secret
        messages = provider.list_messages(creds, max_results=25)
    """

    name = IMAP

    def __init__(
        self,
        config: Optional[IMAPConfig] = None,
        connection_factory: Optional[ConnectionFactory] = None,
    ):
        """
        Initialize IMAP provider.

        Args:
            config: IMAP settings (socket and connection-test timeouts)
            connection_factory: Optional replacement for imaplib connection
                                setup, used by tests
        """
        self.config = config or IMAPConfig()
        self._connection_factory = connection_factory

    def _client(self, creds: Credentials) -> IMAPClient:
        return IMAPClient(
            require_imap(creds, self.name),
            timeout=self.config.timeout,
            connection_factory=self._connection_factory,
        )

    def list_messages(
        self,
        creds: Credentials,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> List[MessageSummary]:
        """List the newest INBOX messages by sequence range."""
        with self._client(creds) as client:
            total = client.select_inbox()
            messages = client.fetch_recent(total, max_results)
        logger.info(f"Listed {len(messages)} of {total} IMAP messages")
        return messages

    def get_message_detail(self, creds: Credentials, message_id: str) -> MessageDetail:
        """Fetch one message by UID."""
        with self._client(creds) as client:
            client.select_inbox()
            return client.fetch_message(message_id)

    def check_connection(self, creds: Credentials) -> None:
        """Connect and authenticate within the connection-test bound."""
        check_login(
            require_imap(creds, self.name),
            timeout=self.config.connection_test_timeout,
            connection_factory=self._connection_factory,
        )
