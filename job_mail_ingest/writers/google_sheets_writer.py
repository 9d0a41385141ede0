"""
Google Sheets table adapter.

Wraps a gspread worksheet as an append-only table: read the header row,
scan one column, append rows.  Appends and reads retry on HTTP 429/5xx
and on dropped connections with exponential backoff + jitter
(1 s -> 60 s, up to 8 retries) before giving up with StoreError.
"""

from __future__ import annotations

import base64
import json
import logging
import random
import time

import gspread
import requests
from google.auth.exceptions import TransportError
from google.oauth2.service_account import Credentials

from job_mail_ingest.errors import ConfigError, StoreError

log = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

# Tunables
MAX_RETRIES = 8
INITIAL_BACKOFF = 1.0        # seconds
MAX_BACKOFF = 60.0
JITTER_MAX = 0.25            # seconds
RETRYABLE_STATUS = {429, 500, 503}

# Network-level failures below the Sheets API (resets, timeouts, DNS)
NETWORK_ERRORS = (requests.exceptions.RequestException, TransportError)


def _status_of(exc: gspread.exceptions.APIError) -> int | None:
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if status is None:
        status = getattr(exc, "code", None)
    return int(status) if status is not None else None


def resolve_credentials(settings) -> Credentials:
    """Build service-account Credentials from the configured source.

    Priority order:
    1. base64-encoded service-account JSON (cloud schedulers)
    2. path to a service-account JSON file (local runs)
    """
    if settings.google_credentials_b64:
        try:
            info = json.loads(base64.b64decode(settings.google_credentials_b64))
        except ValueError as exc:
            raise ConfigError(f"GOOGLE_CREDENTIALS_JSON_BASE64 is not valid base64 JSON: {exc}") from exc
        return Credentials.from_service_account_info(info, scopes=SCOPES)

    if settings.google_service_account_path:
        try:
            return Credentials.from_service_account_file(settings.google_service_account_path, scopes=SCOPES)
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Cannot load Google service-account file: {exc}") from exc

    raise ConfigError(
        "No Google credentials found. Set GOOGLE_CREDENTIALS_JSON_BASE64 "
        "or GOOGLE_SERVICE_ACCOUNT_JSON_PATH"
    )


class SheetTable:
    """One worksheet of the destination spreadsheet."""

    def __init__(self, worksheet, sleep=time.sleep):
        self.worksheet = worksheet
        self.name = worksheet.title
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def header_row(self) -> list[str]:
        return self._call("read header", lambda: self.worksheet.row_values(1))

    def column_values(self, index: int) -> list[str]:
        """Return data-row values (header excluded) of the zero-based column."""
        values = self._call("scan column", lambda: self.worksheet.col_values(index + 1))
        return list(values[1:])

    def append_row(self, values: list[str]) -> None:
        self._call(
            "append row",
            lambda: self.worksheet.append_row(
                values,
                value_input_option="RAW",
                insert_data_option="INSERT_ROWS",
                table_range="A1",
            ),
        )

    def append_rows(self, rows: list[list[str]]) -> None:
        """Append several rows in one API call; they land together or not at all."""
        if not rows:
            return
        self._call(
            f"append {len(rows)} rows",
            lambda: self.worksheet.append_rows(
                rows,
                value_input_option="RAW",
                insert_data_option="INSERT_ROWS",
                table_range="A1",
            ),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _call(self, what, fn):
        retry_count = 0
        while True:
            try:
                return fn()
            except gspread.exceptions.APIError as exc:
                status = _status_of(exc)
                if status in RETRYABLE_STATUS and retry_count < MAX_RETRIES:
                    self._backoff(what, f"HTTP {status}", retry_count)
                    retry_count += 1
                    continue
                log.error("Sheets %s on '%s' FAILED: %s", what, self.name, exc)
                raise StoreError(f"Sheets {what} on '{self.name}' failed: {exc}") from exc
            except NETWORK_ERRORS as exc:
                if retry_count < MAX_RETRIES:
                    self._backoff(what, type(exc).__name__, retry_count)
                    retry_count += 1
                    continue
                log.error("Sheets %s on '%s' FAILED: %s: %s", what, self.name, type(exc).__name__, exc)
                raise StoreError(f"Sheets {what} on '{self.name}' failed: {exc}") from exc

    def _backoff(self, what, cause, retry_count):
        wait = min(INITIAL_BACKOFF * (2 ** retry_count), MAX_BACKOFF)
        wait += random.uniform(0, JITTER_MAX)
        log.warning("Sheets %s on '%s': %s, retrying in %.1fs (attempt %d/%d)",
                    what, self.name, cause, wait, retry_count + 1, MAX_RETRIES)
        self._sleep(wait)


class SheetsConnector:
    """Opens the destination spreadsheet and hands out tab tables."""

    def __init__(self, sheet_id: str, creds: Credentials, sleep=time.sleep):
        if not sheet_id:
            raise ConfigError("No spreadsheet ID provided. Set GOOGLE_SHEET_ID.")
        self.sheet_id = sheet_id
        self._sleep = sleep
        self.client = gspread.authorize(creds)
        try:
            self.sheet = self.client.open_by_key(sheet_id)
        except gspread.exceptions.SpreadsheetNotFound as exc:
            raise ConfigError(f"Spreadsheet not found or not shared: {sheet_id}") from exc
        except gspread.exceptions.APIError as exc:
            raise ConfigError(f"Cannot open spreadsheet {sheet_id}: {exc}") from exc

    @classmethod
    def from_settings(cls, settings) -> "SheetsConnector":
        return cls(settings.google_sheet_id, resolve_credentials(settings))

    def list_tabs(self) -> list[str]:
        return [ws.title for ws in self.sheet.worksheets()]

    def table(self, tab_name: str) -> SheetTable:
        try:
            ws = self.sheet.worksheet(tab_name)
        except gspread.exceptions.WorksheetNotFound as exc:
            raise ConfigError(
                f"Destination tab '{tab_name}' not found. Available tabs: {self.list_tabs()}"
            ) from exc
        return SheetTable(ws, sleep=self._sleep)
