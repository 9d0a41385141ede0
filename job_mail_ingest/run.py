"""
Main entry point for job_mail_ingest.

Usage:
    python -m job_mail_ingest.run
    python -m job_mail_ingest.run --max-messages 5 --debug
    python -m job_mail_ingest.run --preflight

Scheduled runs pass no arguments; everything comes from the environment
(.env supported).  Outcomes are observed through the destination sheet,
the mailbox labels and the run log pack under RUN_LOG_DIR.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import asdict, dataclass

from job_mail_ingest.budget import RunBudget, StopReason
from job_mail_ingest.conversation_processor import ConversationProcessor
from job_mail_ingest.errors import ConfigError, IngestError, LabelStoreError
from job_mail_ingest.extraction import ExtractionEngine
from job_mail_ingest.gmail_reader import GmailSource
from job_mail_ingest.label_state import Outcome
from job_mail_ingest.ledger import Ledger
from job_mail_ingest.run_logger import RunLogger
from job_mail_ingest.settings import Settings, load_env
from job_mail_ingest.writers.google_sheets_writer import SheetsConnector
from job_mail_ingest.writers.record_writer import RecordWriter

log = logging.getLogger(__name__)


@dataclass
class RunSummary:
    conversations_scanned: int = 0
    messages_attempted: int = 0
    messages_skipped: int = 0
    messages_failed: int = 0
    records_written: int = 0
    errors_written: int = 0
    conversations_done: int = 0
    conversations_kept: int = 0
    conversations_cleaned: int = 0
    fetch_errors: int = 0
    label_errors: int = 0
    stop_reason: str = StopReason.COMPLETED.value

    def add(self, report) -> None:
        self.messages_attempted += report.attempted
        self.messages_skipped += report.skipped
        self.messages_failed += report.failed
        self.records_written += report.records_written
        self.errors_written += report.errors_written
        if report.outcome in (Outcome.SUCCEEDED, Outcome.NOTHING_NEW):
            self.conversations_done += 1
        elif report.outcome is Outcome.EMPTY:
            self.conversations_cleaned += 1
        else:
            self.conversations_kept += 1
        if report.label_error:
            self.label_errors += 1

    def to_dict(self) -> dict:
        return asdict(self)


# ------------------------------------------------------------------
# Pipeline
# ------------------------------------------------------------------

def build_components(settings: Settings):
    """Construct source, writer and extraction engine.

    Every fatal configuration problem (settings, credentials, missing
    tab or header) raises ConfigError here, before any label or row is
    touched.
    """
    settings.require_valid()
    source = GmailSource.from_settings(settings)
    connector = SheetsConnector.from_settings(settings)
    writer = RecordWriter.open(connector.table(settings.records_tab),
                               connector.table(settings.errors_tab))
    engine = ExtractionEngine.from_settings(settings)
    return source, writer, engine


def run_pipeline(settings: Settings, source, writer, engine,
                 ledger: Ledger | None = None, budget: RunBudget | None = None,
                 run_logger=None) -> RunSummary:
    """Process NeedsProcess conversations until done or a budget runs out."""
    summary = RunSummary()
    # wall clock runs from here, so label lookup and the ledger scan count
    if budget is None:
        budget = RunBudget.from_settings(settings)

    try:
        needs_id = source.label_id(settings.label_needs_process)
        done_id = source.label_id(settings.label_done)
    except LabelStoreError as exc:
        log.error("Label lookup failed, nothing processed: %s", exc)
        summary.stop_reason = "label_store_error"
        return summary

    if needs_id is None:
        log.error("Label '%s' does not exist; nothing to process", settings.label_needs_process)
        summary.stop_reason = "missing_label"
        return summary
    if done_id is None:
        log.warning("Label '%s' does not exist; finished conversations will only lose '%s'",
                    settings.label_done, settings.label_needs_process)

    if ledger is None:
        ledger = Ledger.from_store(writer, include_errors=settings.errors_are_terminal)

    try:
        conversation_ids = source.list_conversation_ids(needs_id, settings.max_conversations)
    except LabelStoreError as exc:
        log.error("Listing NeedsProcess conversations failed: %s", exc)
        summary.stop_reason = "label_store_error"
        return summary
    log.info("%d conversation(s) labelled '%s' (cap %d)",
             len(conversation_ids), settings.label_needs_process, settings.max_conversations)

    processor = ConversationProcessor(
        source, writer, engine, ledger, budget,
        needs_label_id=needs_id, done_label_id=done_id,
        errors_are_terminal=settings.errors_are_terminal,
        run_logger=run_logger,
    )

    for conversation_id in conversation_ids:
        if budget.check_conversation() is not None:
            break
        budget.begin_conversation()
        summary.conversations_scanned += 1
        try:
            conversation = source.get_conversation(conversation_id)
        except LabelStoreError as exc:
            log.error("Skipping conversation %s: %s", conversation_id, exc)
            summary.fetch_errors += 1
            continue
        summary.add(processor.process(conversation))
        if budget.stop_reason is not None:
            break

    summary.stop_reason = (budget.stop_reason or StopReason.COMPLETED).value
    log.info("Run finished (%s): conversations=%d attempted=%d records=%d errors=%d "
             "done=%d kept=%d cleaned=%d",
             summary.stop_reason, summary.conversations_scanned, summary.messages_attempted,
             summary.records_written, summary.errors_written, summary.conversations_done,
             summary.conversations_kept, summary.conversations_cleaned)
    return summary


# ------------------------------------------------------------------
# Preflight
# ------------------------------------------------------------------

def preflight(settings: Settings) -> list[str]:
    """Run every fatal configuration check without touching labels or rows."""
    problems = settings.validate()
    if problems:
        return problems
    try:
        source, writer, engine = build_components(settings)
    except ConfigError as exc:
        return list(exc.problems)

    for name in (settings.label_needs_process, settings.label_done):
        try:
            if source.label_id(name) is None:
                problems.append(f"Gmail label '{name}' does not exist")
        except LabelStoreError as exc:
            problems.append(str(exc))
            break

    log.info("Preflight: extractor=%s records tab=%s errors tab=%s",
             engine.active.name, writer.records_table.name, writer.errors_table.name)
    return problems


# ------------------------------------------------------------------
# CLI
# ------------------------------------------------------------------

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Extract job postings from labelled Gmail threads into Google Sheets."
    )
    parser.add_argument("--max-conversations", type=int, default=None,
                        help="Override MAX_CONVERSATIONS_PER_RUN for this run")
    parser.add_argument("--max-messages", type=int, default=None,
                        help="Override MAX_MESSAGES_PER_RUN for this run")
    parser.add_argument("--max-runtime", type=float, default=None,
                        help="Override MAX_RUNTIME_SEC for this run")
    parser.add_argument("--preflight", action="store_true",
                        help="Check configuration, credentials, labels and tabs, then exit")
    parser.add_argument("--debug", action="store_true", help="Show DEBUG output on the console")
    args = parser.parse_args(argv)

    t0 = time.monotonic()
    env = load_env()
    try:
        settings = Settings.from_env(env).with_overrides(
            max_conversations=args.max_conversations,
            max_messages=args.max_messages,
            max_runtime_sec=args.max_runtime,
        )
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
        log.error("FATAL: %s", exc)
        return 2

    run_logger = RunLogger(settings.run_log_dir,
                           console_level=logging.DEBUG if args.debug else logging.INFO)
    log.info("=== job_mail_ingest – run %s ===", run_logger.run_id)
    log.info("Caps: conversations=%d messages=%d runtime=%.0fs",
             settings.max_conversations, settings.max_messages, settings.max_runtime_sec)

    try:
        if args.preflight:
            problems = preflight(settings)
            for problem in problems:
                log.error("PREFLIGHT: %s", problem)
            log.info("Preflight %s", "FAILED" if problems else "OK")
            return 1 if problems else 0

        try:
            source, writer, engine = build_components(settings)
            summary = run_pipeline(settings, source, writer, engine, run_logger=run_logger)
        except IngestError as exc:
            log.error("FATAL: %s", exc)
            run_logger.set_summary({"fatal": str(exc)}, duration_sec=time.monotonic() - t0,
                                   args=vars(args))
            run_logger.flush()
            return 1

        run_logger.set_summary(summary.to_dict(), duration_sec=time.monotonic() - t0,
                               args=vars(args))
        run_logger.flush()

        print(f"\n{'='*60}")
        print(f"  RUN COMPLETE: {run_logger.run_id}  ({summary.stop_reason})")
        print(f"{'='*60}")
        print(f"  conversations={summary.conversations_scanned}  "
              f"attempted={summary.messages_attempted}  records={summary.records_written}  "
              f"errors={summary.errors_written}  done={summary.conversations_done}  "
              f"kept={summary.conversations_kept}  cleaned={summary.conversations_cleaned}")
        print(f"  Run log pack: {run_logger.run_dir}")
        print(f"{'='*60}")
        return 0
    finally:
        run_logger.close()


if __name__ == "__main__":
    sys.exit(main())
