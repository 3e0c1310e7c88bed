"""
Best-effort HTML to plain text reduction.

No DOM parser is used; malformed or unbalanced markup yields whatever
survives the substitutions.
"""

import re
from typing import Optional

_SCRIPT_RE = re.compile(r"<script[\s\S]*?>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[\s\S]*?>[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def html_to_text(html: Optional[str]) -> str:
    """
    Reduce an HTML document to plain text.

    Removes <script> and <style> blocks, replaces every remaining tag with a
    space, then collapses whitespace runs and trims.

    Args:
        html: HTML markup (may be None or malformed)

    Returns:
        The surviving text, "" for empty input
    """
    if not html:
        return ""
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()
