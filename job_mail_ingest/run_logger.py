"""
Run Logger – creates a "RUN LOG PACK" per run in <RUN_LOG_DIR>/<run_id>/
Artifacts produced:
  - raw_debug.log     (via Python logging, DEBUG and up)
  - run_summary.json  (counters + stop reason)
  - failures.csv      (one line per failed message, with reason/detail)
  - conversations.csv (outcome and label change per conversation)
"""

import csv
import json
import logging
import os
import sys
from datetime import datetime


class RunLogger:
    """Manages all per-run logging artifacts."""

    FAILURE_FIELDS = [
        "conversation_id", "message_id", "subject", "reason", "detail",
    ]
    CONVERSATION_FIELDS = [
        "conversation_id", "outcome", "messages", "attempted", "skipped",
        "failed", "records_written", "labels_removed", "labels_added", "label_error",
    ]

    def __init__(self, base_dir: str = "logs/runs", console_level=logging.INFO):
        self.run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.run_dir = os.path.join(base_dir, self.run_id)
        os.makedirs(self.run_dir, exist_ok=True)

        # ---- raw_debug.log via Python logging ----
        self._setup_file_logging(console_level)

        # ---- accumulators ----
        self._failures: list[dict] = []
        self._conversations: list[dict] = []
        self._summary: dict = {}

    # ------------------------------------------------------------------
    # Logging setup
    # ------------------------------------------------------------------
    def _setup_file_logging(self, console_level):
        log_path = os.path.join(self.run_dir, "raw_debug.log")
        root = logging.getLogger()
        root.setLevel(logging.DEBUG)
        # Remove any existing handlers
        for h in root.handlers[:]:
            root.removeHandler(h)
        # File handler: everything (DEBUG+)
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        root.addHandler(fh)
        self._handlers = [fh]
        # Console handler: INFO+ only (minimal noise)
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(console_level)
        ch.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        root.addHandler(ch)
        self._handlers.append(ch)

        # HTTP client chatter stays in the file only
        for noisy in ("googleapiclient.discovery", "urllib3", "httpx", "openai"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------
    def add_failure(self, message, reason: str, detail: str = ""):
        """Track a message whose extraction or write failed."""
        self._failures.append({
            "conversation_id": message.conversation_id,
            "message_id": message.id,
            "subject": message.subject,
            "reason": reason,
            "detail": (detail or "")[:500],
        })

    def add_conversation(self, report):
        self._conversations.append({
            "conversation_id": report.conversation_id,
            "outcome": report.outcome.value,
            "messages": report.message_count,
            "attempted": report.attempted,
            "skipped": report.skipped,
            "failed": report.failed,
            "records_written": report.records_written,
            "labels_removed": ";".join(report.label_change.remove),
            "labels_added": ";".join(report.label_change.add),
            "label_error": report.label_error or "",
        })

    @property
    def failures(self) -> list[dict]:
        return list(self._failures)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------
    def set_summary(self, summary: dict, duration_sec: float = 0, args: dict | None = None):
        self._summary = {
            "run_id": self.run_id,
            "timestamp": datetime.now().isoformat(),
            **summary,
            "duration_sec": round(duration_sec, 2),
            "args": args or {},
        }

    # ------------------------------------------------------------------
    # Flush all artifacts to disk
    # ------------------------------------------------------------------
    def flush(self):
        self._write_csv("failures.csv", self.FAILURE_FIELDS, self._failures)
        self._write_csv("conversations.csv", self.CONVERSATION_FIELDS, self._conversations)
        self._write_json("run_summary.json", self._summary)
        logging.info("Run log pack written to %s", self.run_dir)

    def close(self):
        """Detach and close the handlers this logger installed."""
        root = logging.getLogger()
        for h in self._handlers:
            root.removeHandler(h)
            h.close()
        self._handlers = []

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _write_csv(self, filename: str, fieldnames: list[str], rows: list[dict]):
        path = os.path.join(self.run_dir, filename)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
            writer.writeheader()
            for row in rows:
                writer.writerow(row)

    def _write_json(self, filename: str, data):
        path = os.path.join(self.run_dir, filename)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
