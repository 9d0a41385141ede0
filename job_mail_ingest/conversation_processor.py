"""
Conversation processor.

For one conversation (thread) labelled NeedsProcess:

  1. skip every message already in the processed-id ledger
  2. for each remaining message, while the run budget allows:
       extract -> append one record row per valid candidate
       extraction failure / write failure -> append an error row
  3. decide the conversation outcome and apply one label transition
     (see label_state for the table)

The retry unit is the conversation: when any attempted message fails the
thread keeps NeedsProcess and every not-yet-recorded message is tried
again next run.  Nothing raised by one message or one conversation
escapes; store and label failures are logged with the message id and
subject and counted in the report.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from job_mail_ingest.errors import LabelStoreError, StoreError
from job_mail_ingest.label_state import LabelChange, Outcome, plan_transition, state_from_labels
from job_mail_ingest.models import Conversation, ExtractedRecord, Message

log = logging.getLogger(__name__)


@dataclass
class ConversationReport:
    conversation_id: str
    outcome: Outcome = Outcome.SUCCEEDED
    message_count: int = 0
    attempted: int = 0
    skipped: int = 0
    failed: int = 0
    records_written: int = 0
    errors_written: int = 0
    label_change: LabelChange = field(default_factory=LabelChange)
    label_error: str | None = None


class ConversationProcessor:
    def __init__(self, source, writer, engine, ledger, budget,
                 needs_label_id: str, done_label_id: str | None,
                 errors_are_terminal: bool = False, run_logger=None):
        self.source = source
        self.writer = writer
        self.engine = engine
        self.ledger = ledger
        self.budget = budget
        self.needs_label_id = needs_label_id
        self.done_label_id = done_label_id
        self.errors_are_terminal = errors_are_terminal
        self.run_logger = run_logger

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process(self, conversation: Conversation) -> ConversationReport:
        report = ConversationReport(conversation.id, message_count=len(conversation.messages))

        if not conversation.messages:
            report.outcome = Outcome.EMPTY
        else:
            pending = [m for m in conversation.messages if not self.ledger.is_processed(m.id)]
            report.skipped = len(conversation.messages) - len(pending)
            if not pending:
                report.outcome = Outcome.NOTHING_NEW
            else:
                report.outcome = self._process_pending(pending, report)

        if report.outcome is Outcome.SUCCEEDED:
            self.ledger.mark_all(conversation.message_ids)

        self._transition(conversation, report)
        log.info("Conversation %s: %s (messages=%d attempted=%d skipped=%d failed=%d records=%d)",
                 conversation.id, report.outcome.value, report.message_count, report.attempted,
                 report.skipped, report.failed, report.records_written)
        if self.run_logger is not None:
            self.run_logger.add_conversation(report)
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _process_pending(self, pending: list[Message], report: ConversationReport) -> Outcome:
        for message in pending:
            if self.budget.check_message() is not None:
                return Outcome.INTERRUPTED
            if self.budget.begin_message() is not None:
                return Outcome.INTERRUPTED
            report.attempted += 1
            if not self._process_message(message, report):
                report.failed += 1
        # a failure only counts as handled once its error row is stored
        if report.failed and (not self.errors_are_terminal or report.errors_written < report.failed):
            return Outcome.FAILED
        return Outcome.SUCCEEDED

    def _process_message(self, message: Message, report: ConversationReport) -> bool:
        """Extract and persist one message.  Returns False when it failed."""
        result = self.engine.extract(message.plain_body)
        if not result.ok:
            log.warning("Extraction failed for message %s (%r): %s %s",
                        message.id, message.subject, result.reason, result.detail[:200])
            self._record_failure(message, result.reason, result.detail, report)
            return False

        if not result.candidates:
            log.debug("Message %s (%r): nothing to record (%s)",
                      message.id, message.subject, result.reason or result.source)

        records = [ExtractedRecord.from_candidate(c, message) for c in result.candidates]
        try:
            self.writer.append_records(records)
        except StoreError as exc:
            log.error("Record write failed for message %s (%r): %s", message.id, message.subject, exc)
            self._record_failure(message, "Record write failed", str(exc), report)
            return False
        report.records_written += len(records)

        self.ledger.mark_processed(message.id)
        return True

    def _record_failure(self, message: Message, reason: str, detail: str, report: ConversationReport):
        if self.run_logger is not None:
            self.run_logger.add_failure(message, reason, detail)
        try:
            self.writer.append_error(message, reason, detail)
        except StoreError as exc:
            log.error("Error row write failed for message %s (%r): %s", message.id, message.subject, exc)
            return
        report.errors_written += 1
        if self.errors_are_terminal:
            self.ledger.mark_processed(message.id)

    def _transition(self, conversation: Conversation, report: ConversationReport):
        state = state_from_labels(conversation.label_ids, self.needs_label_id, self.done_label_id)
        change = plan_transition(report.outcome, state, self.needs_label_id, self.done_label_id)
        report.label_change = change

        if self.done_label_id is None and report.outcome in (Outcome.SUCCEEDED, Outcome.NOTHING_NEW):
            log.warning("Done label missing: conversation %s removed from NeedsProcess only",
                        conversation.id)
        if change.is_noop:
            return
        try:
            self.source.modify_labels(conversation.id, change)
        except LabelStoreError as exc:
            report.label_error = str(exc)
            log.error("Label transition failed for conversation %s: %s", conversation.id, exc)
