"""
Error kinds raised by providers and the IMAP client.

Every failure surfaced by an adapter is one of these exceptions so callers
can tell the kinds apart without inspecting messages. The normalization
helpers (headers, MIME selection, HTML reduction) never raise them.
"""

from typing import Optional


class ProviderError(Exception):
    """
    Base class for all retrieval failures.

    Attributes:
        kind: Stable identifier for the error kind (e.g. "timeout")
        provider: Name of the provider that raised, if known
    """
    kind: str = "provider_error"

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ConfigurationMissing(ProviderError):
    """No usable credentials or client configuration could be resolved."""
    kind = "configuration_missing"


class AuthenticationFailed(ProviderError):
    """The provider or IMAP server rejected the credentials."""
    kind = "authentication_failed"


class NotFound(ProviderError):
    """The requested message id/UID does not exist."""
    kind = "not_found"


class OperationTimeout(ProviderError):
    """A connection or operation exceeded its time bound."""
    kind = "timeout"


class MalformedResponse(ProviderError):
    """A provider payload, IMAP response or MIME message could not be parsed."""
    kind = "malformed_response"


class TransportError(ProviderError):
    """Socket or HTTP level failure."""
    kind = "transport_error"
