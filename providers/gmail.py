"""
Gmail API provider implementation.

Wraps the Gmail API (google-api-python-client) to implement the EmailProvider
interface. Listing fetches message ids first, then one metadata-only get per
message, fanned out over a thread pool.
"""

import logging
import socket
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import httplib2
from google.auth.exceptions import RefreshError
from google.auth.exceptions import TransportError as GoogleTransportError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from auth.oauth import google_credentials
from core.config import GmailConfig
from core.errors import (
    AuthenticationFailed,
    MalformedResponse,
    NotFound,
    OperationTimeout,
    ProviderError,
    TransportError,
)
from core.headers import format_sender, format_subject, get_header, parse_address
from core.html import html_to_text
from core.mime import find_part, part_from_gmail_payload, select_body
from core.models import (
    GMAIL,
    TEXT_HTML,
    Credentials,
    MessageDetail,
    MessageSummary,
    OAuthClientConfig,
)
from providers.base import DEFAULT_MAX_RESULTS, EmailProvider, require_oauth

logger = logging.getLogger(__name__)

METADATA_HEADERS = ["Subject", "From", "Date"]
RATE_LIMIT_TAGS = ("rateLimitExceeded", "userRateLimitExceeded", "quotaExceeded")

# Service plus the google-auth credentials it was built from (None when injected)
_GmailSession = namedtuple("_GmailSession", ["service", "credentials"])


def _map_http_error(e: HttpError, description: str) -> ProviderError:
    """Translate a Gmail HttpError into an error kind."""
    status = getattr(e.resp, "status", None)
    message = str(e)
    if status == 404 or (status == 400 and "Invalid id value" in message):
        return NotFound(f"{description}: message not found", provider=GMAIL)
    if status == 401:
        return AuthenticationFailed(f"{description}: {message}", provider=GMAIL)
    if status == 403 and not any(tag in message for tag in RATE_LIMIT_TAGS):
        return AuthenticationFailed(f"{description}: {message}", provider=GMAIL)
    return TransportError(f"{description} failed (HTTP {status}): {message}", provider=GMAIL)


class GmailProvider(EmailProvider):
    """
    Gmail API provider implementation.

    Example:
        from providers.gmail import GmailProvider

        gmail = GmailProvider(config.gmail, client=oauth_client)
        for msg in gmail.list_messages(creds, max_results=20):
            detail = gmail.get_message_detail(creds, msg.id)
    """

    name = GMAIL

    def __init__(
        self,
        config: Optional[GmailConfig] = None,
        client: Optional[OAuthClientConfig] = None,
        service: Optional[Any] = None,
    ):
        """
        Initialize Gmail provider.

        Args:
            config: Gmail settings (scopes, timeouts, worker count)
            client: OAuth app registration used to redeem refresh tokens
            service: Optional pre-built Gmail service for testing
        """
        self.config = config or GmailConfig()
        self.client = client
        self._service = service

    def _open(self, creds: Credentials) -> _GmailSession:
        """Build a Gmail service for one call."""
        oauth = require_oauth(creds, self.name)
        if self._service is not None:
            return _GmailSession(self._service, None)

        google_creds = google_credentials(oauth, self.client, self.config)
        service = build("gmail", "v1", credentials=google_creds, cache_discovery=False)
        return _GmailSession(service, google_creds)

    def _execute(self, session: _GmailSession, request: Any, description: str) -> Dict[str, Any]:
        """
        Execute a request, mapping failures to error kinds.

        Each execution gets its own httplib2.Http since Http objects are not
        thread-safe. A 401 is returned as is rather than refreshed and retried.
        """
        kwargs = {}
        if session.credentials is not None:
            kwargs["http"] = AuthorizedHttp(
                session.credentials,
                http=httplib2.Http(timeout=self.config.request_timeout),
                max_refresh_attempts=0,
            )
        try:
            data = request.execute(**kwargs)
        except HttpError as e:
            raise _map_http_error(e, description) from e
        except RefreshError as e:
            raise AuthenticationFailed(f"{description}: {e}", provider=GMAIL) from e
        except GoogleTransportError as e:
            raise TransportError(f"{description}: token endpoint unreachable: {e}", provider=GMAIL) from e
        except (socket.timeout, TimeoutError) as e:
            raise OperationTimeout(f"{description} timed out", provider=GMAIL) from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise TransportError(f"{description} failed: {e}", provider=GMAIL) from e

        if not isinstance(data, dict):
            raise MalformedResponse(f"{description}: unexpected response payload", provider=GMAIL)
        return data

    def list_messages(
        self,
        creds: Credentials,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> List[MessageSummary]:
        """List inbox messages, then fetch their headers concurrently."""
        session = self._open(creds)
        messages_api = session.service.users().messages()

        listing = self._execute(
            session,
            messages_api.list(userId="me", labelIds=["INBOX"], maxResults=max_results),
            "list messages",
        )
        refs = [m for m in listing.get("messages") or [] if isinstance(m, dict) and m.get("id")]
        if not refs:
            return []

        requests = [
            (
                ref,
                messages_api.get(
                    userId="me",
                    id=ref["id"],
                    format="metadata",
                    metadataHeaders=METADATA_HEADERS,
                ),
            )
            for ref in refs
        ]

        workers = max(1, min(self.config.max_workers, len(requests)))
        # Leaving the executor waits for every fetch; the first error is re-raised
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(self._fetch_summary, session, ref, request)
                for ref, request in requests
            ]
            summaries = [future.result() for future in futures]

        logger.info(f"Listed {len(summaries)} Gmail messages")
        return summaries

    def _fetch_summary(self, session: _GmailSession, ref: Dict[str, Any], request: Any) -> MessageSummary:
        message_id = ref["id"]
        data = self._execute(session, request, f"get message {message_id}")
        headers = (data.get("payload") or {}).get("headers") or []
        return MessageSummary(
            id=message_id,
            thread_id=ref.get("threadId") or data.get("threadId") or "",
            subject=format_subject(get_header(headers, "Subject")),
            sender=format_sender(get_header(headers, "From")),
            date=get_header(headers, "Date") or "",
            snippet=data.get("snippet") or "",
        )

    def get_message_detail(self, creds: Credentials, message_id: str) -> MessageDetail:
        """Fetch the full message and reduce its best body part to text."""
        session = self._open(creds)
        data = self._execute(
            session,
            session.service.users().messages().get(userId="me", id=message_id, format="full"),
            f"get message {message_id}",
        )

        payload = data.get("payload") or {}
        headers = payload.get("headers") or []
        snippet = data.get("snippet") or ""

        tree = part_from_gmail_payload(payload)
        candidate = select_body(tree)
        if candidate is None:
            body = ""
        elif candidate.mime_type == TEXT_HTML:
            body = html_to_text(candidate.content)
        else:
            body = candidate.content

        to = get_header(headers, "To")
        return MessageDetail(
            id=message_id,
            thread_id=data.get("threadId") or "",
            subject=format_subject(get_header(headers, "Subject")),
            sender=format_sender(get_header(headers, "From")),
            date=get_header(headers, "Date") or "",
            snippet=snippet,
            body=body or snippet,
            to=parse_address(to) if to else None,
            html=find_part(tree, TEXT_HTML),
        )

    def check_connection(self, creds: Credentials) -> None:
        """Fetch the mailbox profile to confirm the token is accepted."""
        session = self._open(creds)
        profile = self._execute(
            session,
            session.service.users().getProfile(userId="me"),
            "get profile",
        )
        logger.info(f"Gmail connection OK for {profile.get('emailAddress', 'unknown address')}")
