"""Flattening emails to text and splitting text into overlapping chunks."""

import html
import re
from datetime import timezone
from typing import List

from .models import Email, EmailAddress

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200

_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def chunk_text(text: str, size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_CHUNK_OVERLAP) -> List[str]:
    """Split ``text`` into windows of about ``size`` characters.

    A window that does not reach the end of the text is shortened to end just
    after the last ``.`` or newline at or before its limit, provided that
    boundary lies past the window's midpoint. A boundary sitting exactly at the
    limit is kept, so such a chunk holds ``size + 1`` characters. Consecutive
    windows overlap by ``overlap`` characters but always advance by at least
    one. Chunks are stripped and empty ones dropped.

    Text no longer than ``size`` is returned unchanged as a single chunk (so
    ``chunk_text("") == [""]``).
    """
    if size <= 0:
        raise ValueError("size must be positive")
    if overlap < 0 or overlap >= size:
        raise ValueError("overlap must be non-negative and smaller than size")
    if len(text) <= size:
        return [text]

    chunks: List[str] = []
    start = 0
    while start < len(text):
        end = start + size
        if end < len(text):
            break_point = max(text.rfind(".", start, end + 1), text.rfind("\n", start, end + 1))
            if break_point > start + size / 2:
                end = break_point + 1

        chunks.append(text[start:end].strip())
        if end >= len(text):
            break
        # windows always move forward, even when overlap exceeds an early cut
        start = max(end - overlap, start + 1)

    return [c for c in chunks if c]


def chunk_ids(document_id: str, n: int) -> List[str]:
    """Vector ids for the ``n`` chunks of a document.

    A single chunk is stored under the document id itself.
    """
    if n == 1:
        return [document_id]
    return [f"{document_id}:chunk:{i}" for i in range(n)]


def strip_html(markup: str) -> str:
    """Remove tags, scripts and styles, decode entities and collapse whitespace."""
    text = _STYLE_RE.sub("", markup)
    text = _SCRIPT_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text).replace("\xa0", " ")
    return _WS_RE.sub(" ", text).strip()


def format_address(address: EmailAddress) -> str:
    if address.name:
        return f"{address.name} <{address.address}>"
    return address.address


def email_to_plain_text(email: Email) -> str:
    """Render an email as the header block plus body used for embedding."""
    lines = [
        f"From: {format_address(email.from_)}",
        f"To: {', '.join(format_address(a) for a in email.to)}",
    ]
    if email.cc:
        lines.append(f"CC: {', '.join(format_address(a) for a in email.cc)}")
    lines.append(f"Subject: {email.subject}")
    lines.append(f"Date: {email.date.astimezone(timezone.utc).isoformat()}")
    lines.append("")
    lines.append(email.body.text or strip_html(email.body.html or ""))
    return "\n".join(lines)
