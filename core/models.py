"""
Data models for mailbox retrieval.

Provides provider-agnostic value objects for message listings, message
details, credentials and the transient MIME part tree. All of them are built
per request and discarded once the response is produced.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

# Sentinels substituted for missing header data
NO_SUBJECT = "(no subject)"
UNKNOWN_SENDER = "Unknown sender"
UNKNOWN_ADDRESS = "Unknown"

TEXT_PLAIN = "text/plain"
TEXT_HTML = "text/html"

# Serialized names of the message fields that differ from the attribute names
MESSAGE_FIELD_NAMES = {
    "thread_id": "threadId",
    "sender": "from",
    "is_read": "isRead",
}


@dataclass(frozen=True)
class MessageSummary:
    """
    One row of an inbox listing.

    Attributes:
        id: Provider-native message identifier (Gmail ID, Graph ID, IMAP UID)
        thread_id: Provider thread identifier, empty when not supported
        subject: Subject line, never empty ("(no subject)" when missing)
        sender: Display form of the From header, never empty; serialized as "from"
        date: The provider's raw date string
        snippet: Short preview text (may be empty)
        is_read: Read state when the provider reports it
    """
    id: str
    thread_id: str
    subject: str
    sender: str
    date: str
    snippet: str
    is_read: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the external field names ("from", "threadId", "isRead")."""
        return {MESSAGE_FIELD_NAMES.get(key, key): value for key, value in asdict(self).items()}


@dataclass(frozen=True)
class MessageDetail(MessageSummary):
    """
    A single message with its body reduced to plain text.

    Attributes:
        body: Plain-text body; falls back to the snippet when no body exists
        to: Display form of the recipients, if known
        html: Raw HTML part, if the provider exposes one
    """
    body: str = ""
    to: Optional[str] = None
    html: Optional[str] = None


@dataclass(frozen=True)
class OAuthCredentials:
    """Bearer access token and/or a refresh token to mint one."""
    access_token: Optional[str] = field(default=None, repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)

    def __post_init__(self):
        if not (self.access_token or self.refresh_token):
            raise ValueError("OAuthCredentials need an access_token or a refresh_token")


@dataclass(frozen=True)
class IMAPCredentials:
    """
    Connection settings for an IMAP account.

    Attributes:
        host: IMAP server hostname
        port: Server port (993 for implicit TLS)
        user: Login name
        password: Login password or app password
        use_tls: Connect with implicit TLS (IMAP4_SSL)
        verify_tls: Validate the server certificate; False relaxes trust
    """
    host: str
    user: str
    password: str = field(repr=False)
    port: int = 993
    use_tls: bool = True
    verify_tls: bool = True


Credentials = Union[OAuthCredentials, IMAPCredentials]


@dataclass
class MimePart:
    """
    Node of a message's MIME part tree.

    Attributes:
        mime_type: Lower-cased content type ("text/plain", "multipart/alternative", ...)
        body_data: Decoded text content of the part, if any
        children: Sub-parts in document order
    """
    mime_type: str
    body_data: Optional[str] = None
    children: List["MimePart"] = field(default_factory=list)


@dataclass(frozen=True)
class BodyCandidate:
    """Body content chosen from a part tree, with its MIME type."""
    content: str
    mime_type: str


@dataclass(frozen=True)
class ConnectionTestResult:
    """Outcome of a provider connection test."""
    success: bool
    error: Optional[str] = None
    kind: Optional[str] = None


@dataclass(frozen=True)
class OAuthClientConfig:
    """OAuth application registration for a provider."""
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str = ""


@dataclass
class AccountRecord:
    """
    A stored mailbox account as maintained by the external account store.

    Only the fields needed to build credentials are modelled here.
    """
    id: str
    provider: str
    email: str = ""
    label: str = ""
    is_active: bool = True
    is_primary: bool = False
    oauth_access_token: Optional[str] = field(default=None, repr=False)
    oauth_refresh_token: Optional[str] = field(default=None, repr=False)
    imap_host: Optional[str] = None
    imap_port: Optional[int] = None
    imap_username: Optional[str] = None
    imap_password: Optional[str] = field(default=None, repr=False)
    imap_use_tls: Optional[bool] = None


# Provider identifiers
GMAIL = "gmail"
MICROSOFT = "microsoft"
IMAP = "imap"

PROVIDER_ALIASES = {
    "gmail": GMAIL,
    "google": GMAIL,
    "microsoft": MICROSOFT,
    "outlook": MICROSOFT,
    "imap": IMAP,
}


def normalize_provider(name: str) -> str:
    """Map a provider name or alias to its canonical identifier."""
    try:
        return PROVIDER_ALIASES[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown provider: {name}") from None
