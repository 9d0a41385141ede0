"""
Record schema and header map.

Rows are never written by fixed column index.  The header row of each
destination tab is read once per run and every field is placed under
the column whose header matches it, so columns can be reordered (or
extra columns added) in the sheet without corrupting writes.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from job_mail_ingest.errors import ConfigError
from job_mail_ingest.models import ErrorRecord, ExtractedRecord

# field key -> header text in the Jobs tab
RECORD_COLUMNS = {
    "title": "Job Title",
    "organization": "Company",
    "location": "Location",
    "source_url": "Link",
    "status": "Status",
    "date_added": "Date Added",
    "source_message_id": "Email ID",
    "source_subject": "Email Subject",
    "processed_timestamp": "Processed At",
}

# field key -> header text in the Errors tab
ERROR_COLUMNS = {
    "source_message_id": "Email ID",
    "source_subject": "Email Subject",
    "reason": "Reason",
    "detail": "Detail",
    "timestamp": "Timestamp",
}

MESSAGE_ID_FIELD = "source_message_id"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"


def _normalize_header(text: Any) -> str:
    return re.sub(r"\s+", " ", str(text or "")).strip().lower()


class HeaderMap:
    """Maps field keys to zero-based column positions for one tab."""

    def __init__(self, positions: dict[str, int], width: int):
        self.positions = dict(positions)
        self.width = width

    @classmethod
    def from_header_row(cls, header_row: list[Any], columns: Mapping[str, str],
                        tab_name: str = "") -> "HeaderMap":
        """Resolve every field in *columns* against *header_row*.

        Raises ConfigError listing all headers that could not be found.
        """
        lookup: dict[str, int] = {}
        for idx, cell in enumerate(header_row or []):
            key = _normalize_header(cell)
            if key and key not in lookup:
                lookup[key] = idx

        positions: dict[str, int] = {}
        missing: list[str] = []
        for field, header in columns.items():
            idx = lookup.get(_normalize_header(header))
            if idx is None:
                missing.append(header)
            else:
                positions[field] = idx

        if missing:
            where = f" in tab '{tab_name}'" if tab_name else ""
            raise ConfigError(f"Missing header columns{where}: {', '.join(missing)}")
        return cls(positions, width=len(header_row))

    def index_of(self, field: str) -> int:
        return self.positions[field]

    def render(self, values: Mapping[str, Any]) -> list[str]:
        """Return a full-width row with each value under its own header."""
        row = [""] * self.width
        for field, idx in self.positions.items():
            value = values.get(field)
            row[idx] = "" if value is None else str(value)
        return row


def record_values(record: ExtractedRecord) -> dict[str, str]:
    return {
        "title": record.title,
        "organization": record.organization,
        "location": record.location or "",
        "source_url": record.source_url or "",
        "status": record.status.value,
        "date_added": record.date_added.strftime(DATE_FORMAT),
        "source_message_id": record.source_message_id,
        "source_subject": record.source_subject,
        "processed_timestamp": record.processed_timestamp.strftime(TIMESTAMP_FORMAT),
    }


def error_values(error: ErrorRecord) -> dict[str, str]:
    return {
        "source_message_id": error.source_message_id,
        "source_subject": error.source_subject,
        "reason": error.reason,
        "detail": error.detail,
        "timestamp": error.timestamp.strftime(TIMESTAMP_FORMAT),
    }
