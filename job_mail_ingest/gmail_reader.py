"""
Gmail reader – conversations (threads) filtered by label, via the Gmail API.

Read side: resolve label names to ids, list thread ids carrying the
NeedsProcess label (paged, capped), fetch each thread and turn it into
a ``Conversation`` of plain-text ``Message`` objects.

Write side: add/remove labels on one thread in a single ``modify`` call.
API failures surface as LabelStoreError so the caller can log them and
move on to the next conversation.
"""

import base64
import json
import logging

import httplib2
from bs4 import BeautifulSoup
from google.auth.exceptions import GoogleAuthError, RefreshError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials as UserCredentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from job_mail_ingest.errors import ConfigError, LabelStoreError
from job_mail_ingest.models import Conversation, Message

log = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.modify"]

# threads().list page size (API maximum is 500)
_PAGE_SIZE = 100

# Upper bound on queued thread ids read per run before picking the oldest
_MAX_SCAN = 5000

# API errors plus socket timeouts, httplib2 transport and mid-run token refresh failures
TRANSPORT_ERRORS = (HttpError, OSError, httplib2.HttpLib2Error, GoogleAuthError)


# ------------------------------------------------------------------
# Auth
# ------------------------------------------------------------------

def build_gmail_credentials(settings):
    """Return Gmail credentials.

    Priority order:
    1. authorized-user token JSON (GMAIL_TOKEN_PATH), refreshed if expired
    2. service account with domain-wide delegation to GMAIL_DELEGATED_USER
    """
    if settings.gmail_token_path:
        try:
            creds = UserCredentials.from_authorized_user_file(settings.gmail_token_path, SCOPES)
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Cannot load Gmail token file: {exc}") from exc
        if not creds.valid and creds.expired and creds.refresh_token:
            log.info("Gmail: refreshing expired OAuth token")
            try:
                creds.refresh(Request())
            except RefreshError as exc:
                raise ConfigError(f"Gmail token refresh failed: {exc}") from exc
        return creds

    if settings.gmail_delegated_user:
        try:
            if settings.google_credentials_b64:
                info = json.loads(base64.b64decode(settings.google_credentials_b64))
                creds = service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
            else:
                creds = service_account.Credentials.from_service_account_file(
                    settings.google_service_account_path, scopes=SCOPES)
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Cannot load service account for Gmail delegation: {exc}") from exc
        return creds.with_subject(settings.gmail_delegated_user)

    raise ConfigError("No Gmail credentials: set GMAIL_TOKEN_PATH or GMAIL_DELEGATED_USER")


# ------------------------------------------------------------------
# Body decoding
# ------------------------------------------------------------------

def _b64decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="ignore")


def html_to_text(html: str) -> str:
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text(separator="\n", strip=True)


def _find_part(payload: dict, mime_type: str):
    """Depth-first search for the first part of *mime_type* with body data."""
    if payload.get("mimeType") == mime_type and payload.get("body", {}).get("data"):
        return payload
    for part in payload.get("parts") or []:
        found = _find_part(part, mime_type)
        if found is not None:
            return found
    return None


def extract_plain_body(payload: dict) -> str:
    """Plain text of a message payload: text/plain first, else text/html as text."""
    part = _find_part(payload or {}, "text/plain")
    if part is not None:
        return _b64decode(part["body"]["data"])
    part = _find_part(payload or {}, "text/html")
    if part is not None:
        return html_to_text(_b64decode(part["body"]["data"]))
    return ""


def header_value(payload: dict, name: str) -> str:
    wanted = name.strip().lower()
    for header in (payload or {}).get("headers") or []:
        if (header.get("name") or "").strip().lower() == wanted:
            return header.get("value") or ""
    return ""


def message_from_api(raw: dict) -> Message:
    payload = raw.get("payload") or {}
    return Message(
        id=raw["id"],
        conversation_id=raw.get("threadId", ""),
        subject=header_value(payload, "Subject"),
        plain_body=extract_plain_body(payload),
    )


def conversation_from_api(raw: dict) -> Conversation:
    messages = raw.get("messages") or []
    labels = set()
    for m in messages:
        labels.update(m.get("labelIds") or [])
    return Conversation(
        id=raw["id"],
        messages=tuple(message_from_api(m) for m in messages),
        label_ids=frozenset(labels),
    )


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------

class GmailSource:
    """Upstream message source backed by a Gmail API service resource."""

    def __init__(self, service, user_id="me"):
        self.service = service
        self.user_id = user_id
        self._label_ids = None

    @classmethod
    def from_settings(cls, settings):
        creds = build_gmail_credentials(settings)
        service = build("gmail", "v1", credentials=creds, cache_discovery=False)
        return cls(service, user_id=settings.gmail_user_id)

    def label_id(self, name):
        """Return the id of the label called *name*, or None when it does not exist."""
        if self._label_ids is None:
            try:
                resp = self.service.users().labels().list(userId=self.user_id).execute()
            except TRANSPORT_ERRORS as exc:
                raise LabelStoreError(f"Cannot list Gmail labels: {exc}") from exc
            self._label_ids = {lbl["name"]: lbl["id"] for lbl in resp.get("labels", [])}
            log.debug("Gmail: %d labels available", len(self._label_ids))
        return self._label_ids.get(name)

    def list_conversation_ids(self, label_id, limit):
        """Return up to *limit* thread ids carrying *label_id*, oldest first.

        Gmail lists newest first, so the whole queue is read (up to
        _MAX_SCAN ids) and reversed.  Threads that keep failing stay at
        the back and cannot starve older ones.
        """
        ids = []
        page_token = None
        while len(ids) < _MAX_SCAN:
            kwargs = {
                "userId": self.user_id,
                "labelIds": [label_id],
                "maxResults": min(_PAGE_SIZE, _MAX_SCAN - len(ids)),
            }
            if page_token:
                kwargs["pageToken"] = page_token
            try:
                resp = self.service.users().threads().list(**kwargs).execute()
            except TRANSPORT_ERRORS as exc:
                raise LabelStoreError(f"Cannot list threads for label {label_id}: {exc}") from exc
            ids.extend(t["id"] for t in resp.get("threads", []))
            page_token = resp.get("nextPageToken")
            if not page_token:
                break
        if page_token:
            log.warning("Gmail: more than %d threads labelled %s; oldest beyond that wait",
                        _MAX_SCAN, label_id)
        ids.reverse()
        return ids[:limit]

    def get_conversation(self, conversation_id) -> Conversation:
        try:
            raw = self.service.users().threads().get(
                userId=self.user_id, id=conversation_id, format="full"
            ).execute()
        except TRANSPORT_ERRORS as exc:
            raise LabelStoreError(f"Cannot fetch thread {conversation_id}: {exc}") from exc
        return conversation_from_api(raw)

    def modify_labels(self, conversation_id, change) -> None:
        """Apply one LabelChange (removals and additions together)."""
        body = {"removeLabelIds": list(change.remove), "addLabelIds": list(change.add)}
        try:
            self.service.users().threads().modify(
                userId=self.user_id, id=conversation_id, body=body
            ).execute()
        except TRANSPORT_ERRORS as exc:
            raise LabelStoreError(f"Cannot relabel thread {conversation_id}: {exc}") from exc
        log.debug("Relabelled thread %s: -%s +%s", conversation_id, change.remove, change.add)
