"""Shared in-memory fakes for the Gmail source, the sheet tabs and the AI service."""
from __future__ import annotations

import os
import sys
from types import SimpleNamespace

import pytest

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from job_mail_ingest.budget import RunBudget
from job_mail_ingest.errors import LabelStoreError, StoreError
from job_mail_ingest.extraction import ExtractionEngine
from job_mail_ingest.models import Conversation, ExtractionResult, Message, RecordCandidate
from job_mail_ingest.pattern_extractor import PatternExtractor
from job_mail_ingest.schema import ERROR_COLUMNS, RECORD_COLUMNS
from job_mail_ingest.settings import Settings
from job_mail_ingest.writers.record_writer import RecordWriter

NEEDS = "JobMail/NeedsProcess"
DONE = "JobMail/Done"
NEEDS_ID = "Label_needs"
DONE_ID = "Label_done"


# =====================================================================
# Destination tabs
# =====================================================================

class FakeTable:
    """Append-only table with a header row, like one sheet tab."""

    def __init__(self, name, header, rows=None):
        self.name = name
        self.header = list(header)
        self.rows = [list(r) for r in (rows or [])]
        self.fail_appends = 0          # number of upcoming appends that raise
        self.append_calls = 0

    def header_row(self):
        return list(self.header)

    def column_values(self, index):
        return [r[index] if index < len(r) else "" for r in self.rows]

    def append_row(self, values):
        self.append_calls += 1
        if self.fail_appends:
            self.fail_appends -= 1
            raise StoreError(f"append to '{self.name}' failed")
        self.rows.append(list(values))

    def append_rows(self, rows):
        self.append_calls += 1
        if self.fail_appends:
            self.fail_appends -= 1
            raise StoreError(f"append to '{self.name}' failed")
        self.rows.extend(list(r) for r in rows)

    def column(self, header):
        return self.column_values(self.header.index(header))


def make_tables(record_rows=None, error_rows=None):
    records = FakeTable("Jobs", list(RECORD_COLUMNS.values()), record_rows)
    errors = FakeTable("Errors", list(ERROR_COLUMNS.values()), error_rows)
    return records, errors


class FakeWorksheet:
    """gspread Worksheet double; queued exceptions are raised by the next calls."""

    def __init__(self, title="Jobs", values=None, failures=None):
        self.title = title
        self.values = values or [["Job Title", "Email ID"]]
        self.failures = list(failures or [])
        self.append_calls: list[tuple] = []

    def _maybe_fail(self):
        if self.failures:
            raise self.failures.pop(0)

    def row_values(self, row):
        self._maybe_fail()
        return list(self.values[row - 1])

    def col_values(self, col):
        self._maybe_fail()
        return [r[col - 1] for r in self.values if len(r) >= col]

    def append_row(self, values, **kwargs):
        self._maybe_fail()
        self.append_calls.append(([values], kwargs))
        self.values.append(list(values))

    def append_rows(self, values, **kwargs):
        self._maybe_fail()
        self.append_calls.append((values, kwargs))
        self.values.extend(list(v) for v in values)


@pytest.fixture
def tables():
    return make_tables()


@pytest.fixture
def writer(tables):
    return RecordWriter.open(*tables)


# =====================================================================
# Mail source
# =====================================================================

class FakeMailbox:
    """Threads with label sets; implements the source interface used by the pipeline."""

    def __init__(self, labels=None):
        self.labels = {NEEDS: NEEDS_ID, DONE: DONE_ID} if labels is None else dict(labels)
        self.threads: dict[str, dict] = {}
        self.order: list[str] = []
        self.modify_calls: list[tuple] = []
        self.fail_modify: set[str] = set()
        self.fail_fetch: set[str] = set()

    def add_thread(self, thread_id, messages, labels=(NEEDS_ID,)):
        self.threads[thread_id] = {"messages": list(messages), "labels": set(labels)}
        self.order.append(thread_id)

    def labels_of(self, thread_id):
        return set(self.threads[thread_id]["labels"])

    # ---- source interface ----
    def label_id(self, name):
        return self.labels.get(name)

    def list_conversation_ids(self, label_id, limit):
        ids = [t for t in self.order if label_id in self.threads[t]["labels"]]
        return ids[:limit]

    def get_conversation(self, conversation_id):
        if conversation_id in self.fail_fetch:
            raise LabelStoreError(f"cannot fetch {conversation_id}")
        thread = self.threads[conversation_id]
        return Conversation(
            id=conversation_id,
            messages=tuple(thread["messages"]),
            label_ids=frozenset(thread["labels"]),
        )

    def modify_labels(self, conversation_id, change):
        self.modify_calls.append((conversation_id, change.remove, change.add))
        if conversation_id in self.fail_modify:
            raise LabelStoreError(f"modify failed for {conversation_id}")
        labels = self.threads[conversation_id]["labels"]
        labels.difference_update(change.remove)
        labels.update(change.add)


def msg(message_id, body="", subject=None, thread="t1"):
    return Message(id=message_id, conversation_id=thread,
                   subject=subject if subject is not None else f"Subject {message_id}",
                   plain_body=body)


@pytest.fixture
def mailbox():
    return FakeMailbox()


# =====================================================================
# Extraction
# =====================================================================

class ScriptedPrimary:
    """Stands in for the AI extractor: body text -> scripted result."""

    name = "llm"

    def __init__(self, script=None, default=None, available=True):
        self.script = dict(script or {})
        self.default = default
        self._available = available
        self.calls: list[str] = []

    def available(self):
        return self._available

    def extract(self, body):
        self.calls.append(body)
        if body in self.script:
            return self.script[body]
        if self.default is not None:
            return self.default
        return ExtractionResult.success([RecordCandidate(job_title=f"Engineer ({body})",
                                                         company="Acme")], source="llm")


def job(title, company="Acme", **kw):
    return RecordCandidate(job_title=title, company=company, **kw)


def ok(*candidates):
    return ExtractionResult.success(list(candidates), source="llm")


def fail(reason="AI service error", detail="boom"):
    return ExtractionResult.failure(reason, detail=detail, source="llm")


@pytest.fixture
def primary():
    return ScriptedPrimary()


@pytest.fixture
def engine(primary):
    return ExtractionEngine(primary, PatternExtractor())


class FakeOpenAI:
    """Minimal chat.completions.create() double."""

    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.requests: list[dict] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))],
            usage=usage,
        )


# =====================================================================
# Settings / budget
# =====================================================================

@pytest.fixture
def settings():
    return Settings(
        google_sheet_id="sheet-123",
        google_service_account_path="/tmp/sa.json",
        gmail_token_path="/tmp/token.json",
        openai_api_key="sk-test",
        message_pause_min_sec=0.0,
        message_pause_max_sec=0.0,
        conversation_pause_sec=0.0,
    )


class FakeClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class SleepRecorder:
    def __init__(self, clock=None):
        self.calls: list[float] = []
        self.clock = clock

    def __call__(self, seconds):
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


def make_budget(max_conversations=25, max_messages=15, max_runtime_sec=300.0,
                clock=None, sleep=None, **kw):
    return RunBudget(max_conversations, max_messages, max_runtime_sec,
                     clock=clock or FakeClock(), sleep=sleep or SleepRecorder(), **kw)
