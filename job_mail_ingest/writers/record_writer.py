"""
Persistence writer – append-only rows for records and error records.

Both tabs are resolved through their header rows before the first
write.  No row is ever updated or deleted here.
"""

from __future__ import annotations

import logging

from job_mail_ingest.models import ErrorRecord, ExtractedRecord, Message
from job_mail_ingest.schema import (
    ERROR_COLUMNS,
    MESSAGE_ID_FIELD,
    RECORD_COLUMNS,
    HeaderMap,
    error_values,
    record_values,
)

log = logging.getLogger(__name__)


class RecordWriter:
    """Destination store: a records tab and an errors tab."""

    def __init__(self, records_table, errors_table, records_map: HeaderMap, errors_map: HeaderMap):
        self.records_table = records_table
        self.errors_table = errors_table
        self.records_map = records_map
        self.errors_map = errors_map
        self.records_appended = 0
        self.errors_appended = 0

    @classmethod
    def open(cls, records_table, errors_table) -> "RecordWriter":
        """Read both header rows; raises ConfigError when columns are missing."""
        records_map = HeaderMap.from_header_row(records_table.header_row(), RECORD_COLUMNS,
                                                tab_name=records_table.name)
        errors_map = HeaderMap.from_header_row(errors_table.header_row(), ERROR_COLUMNS,
                                               tab_name=errors_table.name)
        log.info("Destination ready: records tab '%s' (%d cols), errors tab '%s' (%d cols)",
                 records_table.name, records_map.width, errors_table.name, errors_map.width)
        return cls(records_table, errors_table, records_map, errors_map)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append_record(self, record: ExtractedRecord) -> None:
        self.records_table.append_row(self.records_map.render(record_values(record)))
        self.records_appended += 1
        log.debug("Appended record: title=%s company=%s message_id=%s",
                  record.title, record.organization, record.source_message_id)

    def append_records(self, records: list[ExtractedRecord]) -> None:
        """Append every record of one message in a single write.

        Rows carry the message id, so a partial write would make the
        message look processed with postings missing.
        """
        if not records:
            return
        rows = [self.records_map.render(record_values(r)) for r in records]
        self.records_table.append_rows(rows)
        self.records_appended += len(rows)
        log.debug("Appended %d record(s) for message_id=%s",
                  len(rows), records[0].source_message_id)

    def append_error(self, message: Message, reason: str, detail: str = "") -> ErrorRecord:
        error = ErrorRecord(
            source_message_id=message.id,
            source_subject=message.subject,
            reason=reason,
            detail=detail or "",
        )
        self.errors_table.append_row(self.errors_map.render(error_values(error)))
        self.errors_appended += 1
        log.debug("Appended error row: message_id=%s reason=%s", message.id, reason)
        return error

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def record_message_ids(self) -> list[str]:
        return self.records_table.column_values(self.records_map.index_of(MESSAGE_ID_FIELD))

    def error_message_ids(self) -> list[str]:
        return self.errors_table.column_values(self.errors_map.index_of(MESSAGE_ID_FIELD))
