"""Query parsing and tokenization.

A query is split on whitespace, keeping double-quoted spans together (a token
may contain a quoted span, e.g. ``subject:"budget review"``). Operator tokens
become structured filters, everything else becomes free-text terms.

Supported operators (prefix match is case-insensitive)
- ``from:`` / ``to:`` / ``subject:``: case-insensitive substring filters
- ``has:attachment``, ``is:read``, ``is:unread``, ``is:starred``
- ``after:`` / ``before:``: dates; values that do not parse are dropped

Quoted phrases are tokenized like any other text, there is no phrase matching.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .models import Email, ensure_utc

STOP_WORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "it", "be", "as", "do", "no", "not", "are",
    "was", "were", "been", "has", "have", "had", "this", "that", "from",
    "will", "can", "if", "so", "up", "out", "just", "than", "them", "then",
})

_QUERY_PART_RE = re.compile(r'(?:[^\s"]+|"[^"]*")+')
_NON_TOKEN_RE = re.compile(r"[^\w\s@.-]")

_DATE_FORMATS = ("%Y/%m/%d", "%m/%d/%Y", "%d %b %Y", "%b %d %Y")


def tokenize(text: str) -> List[str]:
    """Lower-case, strip punctuation (keeping ``@ . -``), drop short and stop words."""
    cleaned = _NON_TOKEN_RE.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) > 1 and t not in STOP_WORDS]


def parse_date(value: str) -> Optional[datetime]:
    """Parse a user supplied date; ``None`` when it is not a valid date."""
    value = value.strip().strip('"')
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return ensure_utc(datetime.strptime(value, fmt))
        except ValueError:
            continue
    return None


@dataclass
class ParsedQuery:
    """Free-text terms plus the structured filters found in a query."""
    terms: List[str] = field(default_factory=list)
    from_: Optional[str] = None
    to: Optional[str] = None
    subject: Optional[str] = None
    has_attachment: bool = False
    is_read: Optional[bool] = None
    is_starred: Optional[bool] = None
    after: Optional[datetime] = None
    before: Optional[datetime] = None

    def has_filters(self) -> bool:
        return bool(
            self.from_
            or self.to
            or self.subject
            or self.has_attachment
            or self.is_read is not None
            or self.is_starred is not None
            or self.after
            or self.before
        )

    def matches(self, email: Email) -> bool:
        """Whether ``email`` satisfies every structured filter of the query."""
        if self.from_ and self.from_.lower() not in email.from_.address.lower():
            return False
        if self.to:
            needle = self.to.lower()
            if not any(needle in a.address.lower() for a in email.to):
                return False
        if self.subject and self.subject.lower() not in email.subject.lower():
            return False
        if self.has_attachment and not email.has_attachments:
            return False
        if self.is_read is not None and email.is_read != self.is_read:
            return False
        if self.is_starred is not None and email.is_starred != self.is_starred:
            return False
        if self.after and email.date < self.after:
            return False
        if self.before and email.date > self.before:
            return False
        return True


def split_query(query: str) -> List[str]:
    """Whitespace split that keeps double-quoted spans inside one part."""
    return _QUERY_PART_RE.findall(query)


def parse_query(query: str) -> ParsedQuery:
    """Parse a raw query string into terms and structured filters."""
    result = ParsedQuery()

    for part in split_query(query):
        lower = part.lower()

        if lower.startswith("from:"):
            result.from_ = part[5:].replace('"', "")
        elif lower.startswith("to:"):
            result.to = part[3:].replace('"', "")
        elif lower.startswith("subject:"):
            result.subject = part[8:].replace('"', "")
        elif lower == "has:attachment":
            result.has_attachment = True
        elif lower == "is:read":
            result.is_read = True
        elif lower == "is:unread":
            result.is_read = False
        elif lower == "is:starred":
            result.is_starred = True
        elif lower.startswith("after:"):
            parsed = parse_date(part[6:])
            if parsed is not None:
                result.after = parsed
        elif lower.startswith("before:"):
            parsed = parse_date(part[7:])
            if parsed is not None:
                result.before = parsed
        else:
            result.terms.extend(tokenize(part))

    return result
