"""
IMAP wire client.

One connection per operation: connect, login, SELECT INBOX read-only, FETCH,
logout. Responses are parsed into MessageSummary/MessageDetail values without
keeping any state between operations.
"""

import email
import email.errors
import imaplib
import logging
import re
import socket
import ssl
import time
from contextlib import contextmanager
from email import policy
from email.message import Message
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from core.errors import (
    AuthenticationFailed,
    MalformedResponse,
    NotFound,
    OperationTimeout,
    ProviderError,
    TransportError,
)
from core.headers import (
    decode_header_value,
    format_sender,
    format_subject,
    make_snippet,
    parse_address,
    parse_header_block,
)
from core.html import html_to_text
from core.mime import find_part, part_from_email_message, select_body
from core.models import IMAP, TEXT_HTML, IMAPCredentials, MessageDetail, MessageSummary

logger = logging.getLogger(__name__)

MAILBOX = "INBOX"
HEADER_FETCH = "(UID BODY.PEEK[HEADER.FIELDS (FROM TO SUBJECT DATE)])"
MESSAGE_FETCH = "(RFC822)"

DEFAULT_TIMEOUT = 10.0
CONNECTION_TEST_TIMEOUT = 15.0

_FETCH_SEQ_RE = re.compile(rb"^\s*(\d+)\s+\(")
_UID_RE = re.compile(rb"UID\s+(\d+)", re.IGNORECASE)

ConnectionFactory = Callable[[str, int, bool, Optional[ssl.SSLContext], float], imaplib.IMAP4]


def build_ssl_context(verify_tls: bool) -> ssl.SSLContext:
    """
    Create the TLS context for IMAP connections.

    With verify_tls=False certificate and hostname checks are disabled. This
    weakened trust mode is opt-in per account/config and logged on every use.
    """
    ctx = ssl.create_default_context()
    if not verify_tls:
        logger.warning("IMAP TLS certificate validation is disabled for this connection")
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


def open_connection(
    host: str,
    port: int,
    use_tls: bool,
    ssl_context: Optional[ssl.SSLContext],
    timeout: float,
) -> imaplib.IMAP4:
    """Open a plain or implicit-TLS IMAP connection."""
    if use_tls:
        return imaplib.IMAP4_SSL(host, port=port, ssl_context=ssl_context, timeout=timeout)
    return imaplib.IMAP4(host, port=port, timeout=timeout)


@contextmanager
def _imap_errors(description: str) -> Iterator[None]:
    """Translate socket/imaplib failures into error kinds."""
    try:
        yield
    except ProviderError:
        raise
    except (socket.timeout, TimeoutError) as e:
        raise OperationTimeout(f"{description} timed out", provider=IMAP) from e
    except imaplib.IMAP4.abort as e:
        raise TransportError(f"{description} failed: {e}", provider=IMAP) from e
    except imaplib.IMAP4.error as e:
        raise MalformedResponse(f"{description} failed: {e}", provider=IMAP) from e
    except OSError as e:
        raise TransportError(f"{description} failed: {e}", provider=IMAP) from e


def _text(data: Any) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data or ""


def _first(headers: Dict[str, List[str]], name: str) -> Optional[str]:
    values = headers.get(name)
    return values[0] if values else None


def parse_header_fetch(data: Sequence[Any]) -> List[Tuple[int, str, Dict[str, List[str]]]]:
    """
    Split a header FETCH response into per-message header maps.

    imaplib returns one (prefix, literal) tuple per message, optionally
    followed by a bytes fragment such as b' UID 42)' when the server puts
    the UID after the literal.

    Args:
        data: Response data from IMAP4.fetch()

    Returns:
        List of (sequence_number, uid, headers) tuples in response order

    Raises:
        MalformedResponse: A message arrived without a UID
    """
    entries: List[List[Any]] = []
    for item in data:
        if isinstance(item, tuple) and len(item) >= 2:
            prefix = item[0] if isinstance(item[0], bytes) else _text(item[0]).encode()
            seq_match = _FETCH_SEQ_RE.match(prefix)
            uid_match = _UID_RE.search(prefix)
            entries.append([
                int(seq_match.group(1)) if seq_match else 0,
                uid_match.group(1).decode() if uid_match else None,
                parse_header_block(_text(item[1])),
            ])
        elif isinstance(item, bytes) and entries and entries[-1][1] is None:
            uid_match = _UID_RE.search(item)
            if uid_match:
                entries[-1][1] = uid_match.group(1).decode()

    for seq, uid, _ in entries:
        if uid is None:
            raise MalformedResponse(f"FETCH response for message {seq} has no UID", provider=IMAP)
    return [(seq, uid, headers) for seq, uid, headers in entries]


def summary_from_headers(uid: str, headers: Dict[str, List[str]]) -> MessageSummary:
    """Build a listing row from a parsed header map."""
    return MessageSummary(
        id=uid,
        thread_id="",
        subject=format_subject(decode_header_value(_first(headers, "subject"))),
        sender=format_sender(decode_header_value(_first(headers, "from"))),
        date=_first(headers, "date") or "",
        snippet="",
    )


def _header_str(msg: Message, name: str) -> Optional[str]:
    value = msg.get(name)
    if value is None:
        return None
    return str(value)


def _iso_date(raw: Optional[str]) -> str:
    if not raw:
        return ""
    try:
        return parsedate_to_datetime(raw).isoformat()
    except (TypeError, ValueError, IndexError):
        return raw


def detail_from_rfc822(uid: str, raw: bytes) -> MessageDetail:
    """
    Parse a full RFC 822 message into a MessageDetail.

    Raises:
        MalformedResponse: The message could not be parsed
    """
    try:
        msg = email.message_from_bytes(raw, policy=policy.default)
        subject = _header_str(msg, "Subject")
        sender = _header_str(msg, "From")
        to = _header_str(msg, "To")
        date = _header_str(msg, "Date")
        tree = part_from_email_message(msg)
    except (email.errors.MessageError, ValueError, TypeError, LookupError) as e:
        raise MalformedResponse(f"Failed to parse message {uid}: {e}", provider=IMAP) from e

    candidate = select_body(tree)
    if candidate is None:
        text = ""
    elif candidate.mime_type == TEXT_HTML:
        text = html_to_text(candidate.content)
    else:
        text = candidate.content

    snippet = make_snippet(text)
    return MessageDetail(
        id=uid,
        thread_id="",
        subject=format_subject(subject),
        sender=format_sender(sender),
        date=_iso_date(date),
        snippet=snippet,
        body=text or snippet,
        to=parse_address(to),
        html=find_part(tree, TEXT_HTML),
    )


class IMAPClient:
    """
    Single-use IMAP connection.

    Use as a context manager; the connection is opened and authenticated on
    entry and released exactly once on exit, whatever happened in between.
    After a timeout or transport failure the socket is shut down without
    attempting a LOGOUT round-trip.

    Example:
        with IMAPClient(creds, timeout=10) as client:
            total = client.select_inbox()
            messages = client.fetch_recent(total, 25)
    """

    def __init__(
        self,
        creds: IMAPCredentials,
        timeout: float = DEFAULT_TIMEOUT,
        connection_factory: Optional[ConnectionFactory] = None,
    ):
        self.creds = creds
        self.timeout = timeout
        self._connection_factory = connection_factory or open_connection
        self._connection: Optional[imaplib.IMAP4] = None
        self._closed = False

    def __enter__(self) -> "IMAPClient":
        try:
            self.connect()
            self.login()
        except BaseException:
            self.close(graceful=False)
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        graceful = exc_type is None or not issubclass(exc_type, (OperationTimeout, TransportError))
        self.close(graceful=graceful)

    def connect(self) -> None:
        """Open the socket (TLS or plain)."""
        if self._connection is not None:
            return
        ctx = build_ssl_context(self.creds.verify_tls) if self.creds.use_tls else None
        with _imap_errors(f"connect to {self.creds.host}:{self.creds.port}"):
            self._connection = self._connection_factory(
                self.creds.host,
                self.creds.port,
                self.creds.use_tls,
                ctx,
                self.timeout,
            )
        logger.debug(f"IMAP socket open to {self.creds.host}:{self.creds.port}")

    def set_timeout(self, timeout: float) -> None:
        """Change the socket timeout for subsequent commands."""
        sock = getattr(self._connection, "sock", None)
        if sock is not None:
            sock.settimeout(timeout)

    def login(self) -> None:
        """Authenticate with username/password."""
        conn = self._require_connection()
        with _imap_errors("login"):
            try:
                conn.login(self.creds.user, self.creds.password)
            except imaplib.IMAP4.abort:
                raise
            except imaplib.IMAP4.error as e:
                reason = _text(e.args[0]) if e.args else str(e)
                raise AuthenticationFailed(f"IMAP login rejected: {reason}", provider=IMAP) from e
        logger.info(f"IMAP connected to {self.creds.host} as {self.creds.user}")

    def select_inbox(self) -> int:
        """Open INBOX read-only and return its message count."""
        conn = self._require_connection()
        with _imap_errors(f"select {MAILBOX}"):
            typ, data = conn.select(MAILBOX, readonly=True)
        if typ != "OK":
            raise TransportError(f"Failed to select mailbox {MAILBOX}: {_text(data[0]) if data else typ}", provider=IMAP)
        try:
            return int(_text(data[0]).strip())
        except (IndexError, ValueError) as e:
            raise MalformedResponse(f"Unexpected SELECT response: {data!r}", provider=IMAP) from e

    def fetch_recent(self, total: int, max_results: int) -> List[MessageSummary]:
        """
        Fetch headers for the newest max_results messages.

        Args:
            total: Message count reported by SELECT
            max_results: Number of messages wanted

        Returns:
            Summaries ordered newest first
        """
        if total <= 0:
            return []
        start = max(1, total - max_results + 1)
        conn = self._require_connection()
        with _imap_errors("fetch headers"):
            typ, data = conn.fetch(f"{start}:{total}", HEADER_FETCH)
        if typ != "OK":
            raise MalformedResponse(f"Header fetch {start}:{total} failed: {typ}", provider=IMAP)

        entries = parse_header_fetch(data or [])
        entries.sort(key=lambda entry: entry[0], reverse=True)
        return [summary_from_headers(uid, headers) for _, uid, headers in entries]

    def fetch_message(self, uid: str) -> MessageDetail:
        """Fetch and parse one full message by UID."""
        if not str(uid).isdigit():
            raise NotFound(f"Invalid IMAP UID: {uid}", provider=IMAP)
        conn = self._require_connection()
        with _imap_errors(f"fetch message {uid}"):
            typ, data = conn.uid("FETCH", str(uid), MESSAGE_FETCH)
        if typ != "OK":
            raise MalformedResponse(f"Message fetch {uid} failed: {typ}", provider=IMAP)

        raw = next(
            (item[1] for item in data or [] if isinstance(item, tuple) and len(item) >= 2),
            None,
        )
        if not raw:
            raise NotFound(f"Message UID {uid} not found", provider=IMAP)
        return detail_from_rfc822(str(uid), raw if isinstance(raw, bytes) else _text(raw).encode())

    def close(self, graceful: bool = True) -> None:
        """Release the connection. Safe to call more than once."""
        conn, self._connection = self._connection, None
        if self._closed or conn is None:
            self._closed = True
            return
        self._closed = True
        try:
            if graceful:
                conn.logout()
            else:
                conn.shutdown()
        except (OSError, imaplib.IMAP4.error) as e:
            logger.debug(f"Error during IMAP teardown: {e}")
        logger.debug("IMAP disconnected")

    def _require_connection(self) -> imaplib.IMAP4:
        if self._connection is None:
            raise TransportError("IMAP connection is not open", provider=IMAP)
        return self._connection


def check_login(
    creds: IMAPCredentials,
    timeout: float = CONNECTION_TEST_TIMEOUT,
    connection_factory: Optional[ConnectionFactory] = None,
) -> None:
    """
    Connect and authenticate within a total time bound, then disconnect.

    Raises:
        OperationTimeout: Connect + login did not finish within timeout
        AuthenticationFailed: Credentials were rejected
        TransportError: The server could not be reached
    """
    deadline = time.monotonic() + timeout
    client = IMAPClient(creds, timeout=timeout, connection_factory=connection_factory)
    try:
        client.connect()
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise OperationTimeout(f"Connection test exceeded {timeout:.0f}s", provider=IMAP)
        client.set_timeout(remaining)
        client.login()
    except (OperationTimeout, TransportError):
        client.close(graceful=False)
        raise
    finally:
        client.close()
