"""Domain model for indexing and searching email.

Emails and results are plain dataclasses; search options are pydantic models
so limits and weights are validated when a request is built.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as a timezone-aware datetime (naive means UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_epoch_ms(value: datetime) -> int:
    """Milliseconds since the Unix epoch."""
    return int(ensure_utc(value).timestamp() * 1000)


def from_epoch_ms(value: Optional[float]) -> datetime:
    return datetime.fromtimestamp((value or 0) / 1000, tz=timezone.utc)


@dataclass
class EmailAddress:
    address: str
    name: Optional[str] = None


@dataclass
class EmailBody:
    text: Optional[str] = None
    html: Optional[str] = None


@dataclass
class Attachment:
    filename: str
    content_type: str = "application/octet-stream"
    size: int = 0


@dataclass
class Email:
    """An email as seen by the search engine.

    ``id`` is the identity: indexing an email with an existing id replaces
    the previous version everywhere.
    """
    id: str
    subject: str
    from_: EmailAddress
    date: datetime
    body: EmailBody = field(default_factory=EmailBody)
    to: List[EmailAddress] = field(default_factory=list)
    cc: List[EmailAddress] = field(default_factory=list)
    bcc: List[EmailAddress] = field(default_factory=list)
    folder: str = "inbox"
    labels: List[str] = field(default_factory=list)
    is_read: bool = False
    is_starred: bool = False
    is_draft: bool = False
    attachments: List[Attachment] = field(default_factory=list)
    thread_id: Optional[str] = None
    provider: str = "unknown"

    def __post_init__(self):
        self.date = ensure_utc(self.date)

    @property
    def has_attachments(self) -> bool:
        return len(self.attachments) > 0


class MatchType(Enum):
    """Which ranker produced a result."""
    LEXICAL = "lexical"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"


@dataclass
class SearchResult:
    email: Email
    score: float
    match_type: MatchType
    highlights: List[str] = field(default_factory=list)


class SearchOptions(BaseModel):
    """Options shared by every search mode."""
    model_config = ConfigDict(populate_by_name=True)

    limit: int = Field(10, ge=1, description="Maximum number of results")
    min_score: float = Field(0.0, description="Results scoring below this are dropped")
    folder: Optional[str] = Field(None, description="Exact folder name")
    label: Optional[str] = Field(None, description="Label the email must carry")
    from_: Optional[str] = Field(None, alias="from", description="Sender address")
    after: Optional[datetime] = Field(None, description="Earliest email date (inclusive)")
    before: Optional[datetime] = Field(None, description="Latest email date (inclusive)")

    @field_validator("after", "before")
    @classmethod
    def _normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def has_filters(self) -> bool:
        return any([self.folder, self.label, self.from_, self.after, self.before])


class HybridSearchOptions(SearchOptions):
    """Search options plus the semantic/lexical weight."""
    alpha: float = Field(0.5, ge=0.0, le=1.0, description="Weight of the semantic ranker")

    def base_options(self, limit: int) -> SearchOptions:
        """Options for the underlying rankers, with a different limit."""
        return SearchOptions.model_validate(
            {**self.model_dump(exclude={"alpha", "limit"}), "limit": limit}
        )


@dataclass
class Pagination:
    limit: int = 50
    offset: int = 0


@dataclass
class Page(Generic[T]):
    items: List[T]
    total: int
    has_more: bool
