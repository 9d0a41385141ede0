"""
Data model for the ingestion pipeline.

Messages and conversations are read-only snapshots of the mail source.
Candidates come out of the extractors; records and error records are
what the persistence writer appends to the destination table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

# Titles the AI service uses when it could not find a real posting
SENTINEL_TITLES = {"n/a", "error"}


class RecordStatus(str, Enum):
    NEW = "New"
    APPLIED = "Applied"
    VIEWED = "Viewed"
    INTERVIEWING = "Interviewing"
    REJECTED = "Rejected"


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def is_valid_title(title) -> bool:
    """A title is usable when present, non-blank and not a sentinel value."""
    if not isinstance(title, str):
        return False
    cleaned = title.strip()
    if not cleaned:
        return False
    return cleaned.lower() not in SENTINEL_TITLES


@dataclass(frozen=True)
class Message:
    id: str
    conversation_id: str
    subject: str = ""
    plain_body: str = ""


@dataclass(frozen=True)
class Conversation:
    id: str
    messages: tuple[Message, ...] = ()
    label_ids: frozenset[str] = frozenset()

    @property
    def message_ids(self) -> list[str]:
        return [m.id for m in self.messages]


@dataclass(frozen=True)
class RecordCandidate:
    """Unvalidated posting proposed by an extractor."""

    job_title: str | None
    company: str | None = None
    location: str | None = None
    link: str | None = None
    status: RecordStatus = RecordStatus.NEW

    def is_valid(self) -> bool:
        return is_valid_title(self.job_title)


@dataclass(frozen=True)
class ExtractedRecord:
    title: str
    organization: str
    source_message_id: str
    source_subject: str
    location: str | None = None
    source_url: str | None = None
    status: RecordStatus = RecordStatus.NEW
    date_added: datetime = field(default_factory=utc_now)
    processed_timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def from_candidate(cls, candidate: RecordCandidate, message: Message,
                       now: datetime | None = None) -> "ExtractedRecord":
        if not candidate.is_valid():
            raise ValueError(f"candidate title {candidate.job_title!r} is not a valid title")
        stamp = now or utc_now()
        return cls(
            title=candidate.job_title.strip(),
            organization=(candidate.company or "").strip(),
            location=(candidate.location or "").strip() or None,
            source_url=(candidate.link or "").strip() or None,
            status=candidate.status,
            date_added=stamp,
            source_message_id=message.id,
            source_subject=message.subject,
            processed_timestamp=stamp,
        )


@dataclass(frozen=True)
class ErrorRecord:
    source_message_id: str
    source_subject: str
    reason: str
    detail: str = ""
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of one extraction attempt.

    ``ok`` is False only when the extraction call itself failed.  An
    empty body or a body with no postings is a successful result with
    no candidates.
    """

    ok: bool
    candidates: tuple[RecordCandidate, ...] = ()
    reason: str = ""
    detail: str = ""
    source: str = ""

    @classmethod
    def success(cls, candidates, source: str) -> "ExtractionResult":
        return cls(ok=True, candidates=tuple(candidates), source=source)

    @classmethod
    def nothing(cls, reason: str = "empty body") -> "ExtractionResult":
        return cls(ok=True, reason=reason, source="none")

    @classmethod
    def failure(cls, reason: str, detail: str = "", source: str = "") -> "ExtractionResult":
        return cls(ok=False, reason=reason, detail=detail, source=source)
