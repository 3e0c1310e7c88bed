"""
Header and address normalization.

Turns raw header values from any provider into the display strings used in
MessageSummary/MessageDetail. Nothing in this module raises on bad input; it
degrades to sentinel values instead.
"""

import re
from email.header import decode_header
from typing import Dict, Iterable, List, Mapping, Optional

from core.models import NO_SUBJECT, UNKNOWN_ADDRESS, UNKNOWN_SENDER

# "Name <addr>" - the name part may be quoted or empty
_NAME_ADDR_RE = re.compile(r"^\s*(.*?)\s*<([^<>]*)>")
_HEADER_LINE_RE = re.compile(r"^([^:\s][^:]*):\s*(.*)$")
_WHITESPACE_RE = re.compile(r"\s+")

SNIPPET_LENGTH = 150


def decode_header_value(s: Optional[str]) -> str:
    """Decode an email header value handling RFC 2047 encoded words."""
    if not s:
        return ""
    try:
        decoded = decode_header(s)
    except Exception:
        return s
    parts = []
    for text, enc in decoded:
        if isinstance(text, bytes):
            try:
                parts.append(text.decode(enc or "utf-8", errors="replace"))
            except LookupError:
                parts.append(text.decode("utf-8", errors="replace"))
        else:
            parts.append(text)
    return "".join(parts)


def parse_address(raw: Optional[str]) -> str:
    """
    Normalize an address header value into a display string.

    Args:
        raw: Header value such as '"Jane Doe" <jane@example.com>' or a bare
             address. May be None.

    Returns:
        "Name <addr>" when a display name is present, the bare address when
        the name is empty, the raw value when no angle-bracket form matches,
        or "Unknown" when nothing was supplied.
    """
    if raw is None:
        return UNKNOWN_ADDRESS
    match = _NAME_ADDR_RE.match(raw)
    if not match:
        return raw
    name = match.group(1).strip().strip('"').strip("'").strip()
    address = match.group(2).strip()
    if not name:
        return address or raw
    return f"{name} <{address}>"


def format_sender(raw: Optional[str]) -> str:
    """From header for a summary: parsed address, or the sender sentinel."""
    if not raw or not raw.strip():
        return UNKNOWN_SENDER
    return parse_address(raw)


def format_subject(raw: Optional[str]) -> str:
    """Subject for a summary, with the no-subject sentinel."""
    if not raw or not raw.strip():
        return NO_SUBJECT
    return raw


def get_header(headers: Optional[Iterable[Mapping]], name: str) -> Optional[str]:
    """
    Look up a header in a Gmail-style [{"name": ..., "value": ...}] list.

    Matching is case-insensitive; the first match wins.
    """
    if not headers:
        return None
    wanted = name.lower()
    for h in headers:
        if (h.get("name") or "").lower() == wanted:
            return h.get("value")
    return None


def parse_header_block(raw: str) -> Dict[str, List[str]]:
    """
    Parse a raw RFC 822 header blob into a multi-valued header map.

    A line starting with whitespace continues the previous header: it is
    trimmed and appended, space-joined, to that header's last value. A
    "Name: value" line starts a new value under the lower-cased name.
    Anything else (including continuation lines before any header) is
    ignored.

    Args:
        raw: Header text as returned by an IMAP HEADER.FIELDS fetch

    Returns:
        Dict mapping lower-cased header names to their values in order
    """
    headers: Dict[str, List[str]] = {}
    current: Optional[str] = None
    for line in re.split(r"\r?\n", raw or ""):
        if not line:
            continue
        if line[0] in " \t":
            if current is not None:
                headers[current][-1] += " " + line.strip()
            continue
        match = _HEADER_LINE_RE.match(line)
        if match:
            current = match.group(1).strip().lower()
            headers.setdefault(current, []).append(match.group(2))
    return headers


def make_snippet(text: Optional[str], max_length: int = SNIPPET_LENGTH) -> str:
    """Collapse whitespace and truncate text to a preview."""
    if not text:
        return ""
    cleaned = _WHITESPACE_RE.sub(" ", text).strip()
    if len(cleaned) <= max_length:
        return cleaned
    return cleaned[:max_length].strip() + "..."
