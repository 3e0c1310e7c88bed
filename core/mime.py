"""
MIME part tree construction and body selection.

Provider payloads (Gmail JSON parts, parsed RFC 822 messages) are mapped into
a MimePart tree at the adapter boundary; select_body() then picks the body
representation shown to callers.
"""

import base64
import binascii
import logging
from email.message import Message
from typing import Any, Dict, Optional

from core.models import TEXT_HTML, TEXT_PLAIN, BodyCandidate, MimePart

logger = logging.getLogger(__name__)


def decode_base64url(data: Optional[str]) -> Optional[str]:
    """Decode Gmail's URL-safe base64 body data (padding optional)."""
    if not data:
        return None
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as e:
        logger.debug(f"Undecodable body data: {e}")
        return None
    return raw.decode("utf-8", errors="replace")


def select_body(part: Optional[MimePart]) -> Optional[BodyCandidate]:
    """
    Pick the best body from a part tree.

    Walks depth-first, left to right. The first text/plain part with data
    ends the whole search. text/html parts with data are only remembered;
    the first one in document order is returned when no plain-text part
    exists anywhere in the tree.

    Args:
        part: Root of the part tree (may be None)

    Returns:
        BodyCandidate for the chosen part, or None if the tree has no
        text/plain or text/html data
    """
    if part is None:
        return None

    if part.mime_type == TEXT_PLAIN and part.body_data:
        return BodyCandidate(content=part.body_data, mime_type=TEXT_PLAIN)

    html_candidate: Optional[BodyCandidate] = None
    if part.mime_type == TEXT_HTML and part.body_data:
        html_candidate = BodyCandidate(content=part.body_data, mime_type=TEXT_HTML)

    for child in part.children:
        found = select_body(child)
        if found is None:
            continue
        if found.mime_type == TEXT_PLAIN:
            return found
        if html_candidate is None:
            html_candidate = found

    return html_candidate


def find_part(part: Optional[MimePart], mime_type: str) -> Optional[str]:
    """Return the data of the first part of mime_type in document order."""
    if part is None:
        return None
    if part.mime_type == mime_type and part.body_data:
        return part.body_data
    for child in part.children:
        found = find_part(child, mime_type)
        if found:
            return found
    return None


def part_from_gmail_payload(payload: Optional[Dict[str, Any]]) -> Optional[MimePart]:
    """
    Map a Gmail API message payload into a MimePart tree.

    Body data is base64url-decoded here so the tree only carries text.
    Entries that are not JSON objects are dropped.
    """
    if not isinstance(payload, dict):
        return None
    body = payload.get("body") or {}
    children = []
    for child in payload.get("parts") or []:
        node = part_from_gmail_payload(child)
        if node is not None:
            children.append(node)
    return MimePart(
        mime_type=(payload.get("mimeType") or "").lower(),
        body_data=decode_base64url(body.get("data")) if isinstance(body, dict) else None,
        children=children,
    )


def _decode_text_payload(msg: Message) -> Optional[str]:
    payload = msg.get_payload(decode=True)
    if not payload:
        return None
    charset = msg.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def part_from_email_message(msg: Message) -> MimePart:
    """
    Map a parsed email.message.Message into a MimePart tree.

    Only inline text/* leaves carry data; attachments are kept as empty
    nodes so document order is preserved.
    """
    mime_type = msg.get_content_type().lower()
    if msg.is_multipart():
        children = [
            part_from_email_message(sub)
            for sub in msg.get_payload()
            if isinstance(sub, Message)
        ]
        return MimePart(mime_type=mime_type, children=children)

    body_data = None
    if msg.get_content_maintype() == "text" and msg.get_content_disposition() != "attachment":
        body_data = _decode_text_payload(msg)
    return MimePart(mime_type=mime_type, body_data=body_data)
