"""
Microsoft Outlook provider implementation.

Uses the Microsoft Graph mail API over requests. A single collection call
returns the listing with preview text and read state; detail fetches reduce
HTML bodies to text.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from auth.oauth import microsoft_access_token
from core.config import OutlookConfig
from core.errors import (
    AuthenticationFailed,
    MalformedResponse,
    NotFound,
    OperationTimeout,
    TransportError,
)
from core.headers import format_sender, format_subject, parse_address
from core.html import html_to_text
from core.models import MICROSOFT, Credentials, MessageDetail, MessageSummary, OAuthClientConfig
from providers.base import DEFAULT_MAX_RESULTS, EmailProvider, require_oauth

logger = logging.getLogger(__name__)

# Microsoft Graph API endpoints
GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"
GRAPH_API_INBOX_MESSAGES = f"{GRAPH_API_BASE}/me/mailFolders/Inbox/messages"
GRAPH_API_MESSAGE = f"{GRAPH_API_BASE}/me/messages/{{message_id}}"
GRAPH_API_ME = f"{GRAPH_API_BASE}/me"

LIST_SELECT = "id,conversationId,subject,from,receivedDateTime,bodyPreview,isRead"
DETAIL_SELECT = "id,conversationId,subject,from,toRecipients,receivedDateTime,bodyPreview,body,isRead"


def _raw_address(recipient: Optional[Dict[str, Any]]) -> Optional[str]:
    """Render a Graph recipient object as a raw 'Name <addr>' header value."""
    if not isinstance(recipient, dict):
        return None
    email_addr = recipient.get("emailAddress") or {}
    name = (email_addr.get("name") or "").strip()
    address = (email_addr.get("address") or "").strip()
    if name and address and name != address:
        return f'"{name}" <{address}>'
    return address or name or None


class OutlookProvider(EmailProvider):
    """
    Microsoft Outlook provider using Graph API.

    Example:
        provider = OutlookProvider(config.outlook, client=oauth_client)
        for msg in provider.list_messages(creds, max_results=25):
            print(msg.sender, msg.subject, msg.is_read)

    Notes:
        - Access tokens are used as-is; refresh tokens are redeemed via MSAL
        - Every call opens and closes its own requests.Session
    """

    name = MICROSOFT

    def __init__(
        self,
        config: Optional[OutlookConfig] = None,
        client: Optional[OAuthClientConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Outlook provider.

        Args:
            config: Graph settings (authority, scopes, request timeout)
            client: OAuth app registration used to redeem refresh tokens
            session: Optional pre-built session for testing
        """
        self.config = config or OutlookConfig()
        self.client = client
        self._session = session

    def _new_session(self, creds: Credentials) -> requests.Session:
        """Create a session with the bearer token for one call."""
        token = microsoft_access_token(require_oauth(creds, self.name), self.client, self.config)
        session = self._session if self._session is not None else requests.Session()
        session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        })
        return session

    def _api_get(self, creds: Credentials, url: str, description: str, params: Optional[Dict] = None) -> Dict:
        """Make GET request to Graph API."""
        session = self._new_session(creds)
        try:
            response = session.get(url, params=params, timeout=self.config.request_timeout)
        except requests.Timeout as e:
            raise OperationTimeout(f"{description} timed out", provider=self.name) from e
        except requests.RequestException as e:
            raise TransportError(f"{description} failed: {e}", provider=self.name) from e
        finally:
            session.close()

        if not response.ok:
            self._raise_for_status(response, description)

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponse(f"{description}: response is not JSON", provider=self.name) from e
        if not isinstance(data, dict):
            raise MalformedResponse(f"{description}: unexpected response payload", provider=self.name)
        return data

    def _raise_for_status(self, response: requests.Response, description: str) -> None:
        """Raise the error kind matching a failed Graph response."""
        try:
            message = (response.json().get("error") or {}).get("message")
        except (ValueError, AttributeError):
            message = None
        message = message or response.reason or "request failed"
        status = response.status_code

        if status in (401, 403):
            raise AuthenticationFailed(f"{description}: {message}", provider=self.name)
        if status == 404:
            raise NotFound(f"{description}: {message}", provider=self.name)
        raise TransportError(f"{description} failed (HTTP {status}): {message}", provider=self.name)

    def list_messages(
        self,
        creds: Credentials,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> List[MessageSummary]:
        """List inbox messages, newest first."""
        params = {
            "$top": max_results,
            "$orderby": "receivedDateTime desc",
            "$select": LIST_SELECT,
        }
        result = self._api_get(creds, GRAPH_API_INBOX_MESSAGES, "list messages", params=params)

        items = result.get("value")
        if not isinstance(items, list):
            raise MalformedResponse("list messages: missing 'value' collection", provider=self.name)

        messages = []
        for msg in items:
            if not isinstance(msg, dict) or not msg.get("id"):
                raise MalformedResponse("list messages: message without id", provider=self.name)
            messages.append(MessageSummary(
                id=msg["id"],
                thread_id=msg.get("conversationId") or "",
                subject=format_subject(msg.get("subject")),
                sender=format_sender(_raw_address(msg.get("from"))),
                date=msg.get("receivedDateTime") or "",
                snippet=msg.get("bodyPreview") or "",
                is_read=msg.get("isRead"),
            ))

        logger.info(f"Listed {len(messages)} Outlook messages")
        return messages

    def get_message_detail(self, creds: Credentials, message_id: str) -> MessageDetail:
        """Fetch message details by ID."""
        url = GRAPH_API_MESSAGE.format(message_id=quote(message_id, safe=""))
        msg = self._api_get(
            creds,
            url,
            f"get message {message_id}",
            params={"$select": DETAIL_SELECT},
        )

        snippet = msg.get("bodyPreview") or ""
        body_obj = msg.get("body") or {}
        content_type = (body_obj.get("contentType") or "").lower()
        content = body_obj.get("content") or ""
        html = None
        if content_type == "html":
            html = content or None
            body = html_to_text(content)
        elif content_type == "text":
            body = content
        else:
            body = ""

        recipients = [
            parse_address(raw)
            for raw in (_raw_address(r) for r in msg.get("toRecipients") or [])
            if raw
        ]

        return MessageDetail(
            id=msg.get("id") or message_id,
            thread_id=msg.get("conversationId") or "",
            subject=format_subject(msg.get("subject")),
            sender=format_sender(_raw_address(msg.get("from"))),
            date=msg.get("receivedDateTime") or "",
            snippet=snippet,
            is_read=msg.get("isRead"),
            body=body or snippet,
            to=", ".join(recipients) or None,
            html=html,
        )

    def check_connection(self, creds: Credentials) -> None:
        """Call /me to confirm the token is accepted."""
        me = self._api_get(creds, GRAPH_API_ME, "get profile")
        logger.info(f"Outlook connection OK for {me.get('userPrincipalName', 'unknown user')}")
