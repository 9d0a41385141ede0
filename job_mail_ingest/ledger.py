"""
Processed-message ledger.

The set of already-processed message ids is rebuilt from the
destination table at the start of every run, then extended in memory
as messages are handled so one run never writes the same message twice.
Nothing is cached between runs.
"""

from __future__ import annotations

import logging

log = logging.getLogger(__name__)


def _clean_ids(values) -> set[str]:
    ids = set()
    for value in values:
        key = str(value).strip() if value is not None else ""
        if key:
            ids.add(key)
    return ids


def build_processed_set(store, include_errors: bool = False) -> set[str]:
    """Collect message ids already represented in *store*.

    Record rows are always terminal.  Error rows only count when
    *include_errors* is set; by default a failed message is retried
    through its conversation label instead.  A header-only table
    yields an empty set.
    """
    processed = _clean_ids(store.record_message_ids())
    record_count = len(processed)
    if include_errors:
        processed |= _clean_ids(store.error_message_ids())
    log.info("Ledger rebuilt: %d ids from records%s",
             record_count,
             f", {len(processed) - record_count} more from errors" if include_errors else "")
    return processed


class Ledger:
    """Run-scoped view of the processed id set."""

    def __init__(self, processed_ids=None):
        self._ids: set[str] = set(processed_ids or ())

    @classmethod
    def from_store(cls, store, include_errors: bool = False) -> "Ledger":
        return cls(build_processed_set(store, include_errors=include_errors))

    def is_processed(self, message_id: str) -> bool:
        return message_id in self._ids

    def mark_processed(self, message_id: str) -> None:
        self._ids.add(message_id)

    def mark_all(self, message_ids) -> None:
        self._ids.update(message_ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, message_id) -> bool:
        return message_id in self._ids
