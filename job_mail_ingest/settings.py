"""Load runtime settings from environment and .env files."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Mapping

from dotenv import load_dotenv

from job_mail_ingest.errors import ConfigError

_TRUE = ("1", "true", "yes", "on")


def load_env(env_path: str | None = None) -> dict[str, str]:
    """Load .env (project root by default) and return os.environ as a dict."""
    if env_path is None:
        env_path = os.path.join(os.getcwd(), ".env")
    load_dotenv(env_path)
    return dict(os.environ)


def _flag(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or not str(raw).strip():
        return default
    return str(raw).strip().lower() in _TRUE


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not str(raw).strip():
        return default
    try:
        return int(str(raw).strip())
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(str(raw).strip())
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


def _str(env: Mapping[str, str], key: str, default: str = "") -> str:
    raw = env.get(key)
    if raw is None:
        return default
    return str(raw).strip() or default


@dataclass(frozen=True)
class Settings:
    # Gmail
    gmail_user_id: str = "me"
    gmail_token_path: str = ""
    gmail_delegated_user: str = ""
    label_needs_process: str = "JobMail/NeedsProcess"
    label_done: str = "JobMail/Done"

    # Destination spreadsheet
    google_sheet_id: str = ""
    google_service_account_path: str = ""
    google_credentials_b64: str = ""
    records_tab: str = "Jobs"
    errors_tab: str = "Errors"

    # AI extraction
    use_llm: bool = True
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    llm_timeout_sec: float = 45.0
    llm_max_retries: int = 2
    llm_text_char_limit: int = 12_000

    # Run budget
    max_conversations: int = 25
    max_messages: int = 15
    max_runtime_sec: float = 300.0
    message_pause_min_sec: float = 1.0
    message_pause_max_sec: float = 3.0
    conversation_pause_sec: float = 0.5

    errors_are_terminal: bool = False
    run_log_dir: str = "logs/runs"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        if env is None:
            env = os.environ
        sa_path = _str(env, "GOOGLE_SERVICE_ACCOUNT_JSON_PATH") or _str(env, "GOOGLE_CREDS_PATH")
        return cls(
            gmail_user_id=_str(env, "GMAIL_USER_ID", "me"),
            gmail_token_path=_str(env, "GMAIL_TOKEN_PATH"),
            gmail_delegated_user=_str(env, "GMAIL_DELEGATED_USER"),
            label_needs_process=_str(env, "LABEL_NEEDS_PROCESS", cls.label_needs_process),
            label_done=_str(env, "LABEL_DONE", cls.label_done),
            google_sheet_id=_str(env, "GOOGLE_SHEET_ID"),
            google_service_account_path=sa_path,
            google_credentials_b64=_str(env, "GOOGLE_CREDENTIALS_JSON_BASE64"),
            records_tab=_str(env, "SHEETS_TAB_RECORDS", cls.records_tab),
            errors_tab=_str(env, "SHEETS_TAB_ERRORS", cls.errors_tab),
            use_llm=_flag(env, "USE_LLM", True),
            openai_api_key=_str(env, "OPENAI_API_KEY"),
            openai_model=_str(env, "OPENAI_MODEL", cls.openai_model),
            llm_timeout_sec=_float(env, "LLM_TIMEOUT_SEC", cls.llm_timeout_sec),
            llm_max_retries=_int(env, "LLM_MAX_RETRIES", cls.llm_max_retries),
            llm_text_char_limit=_int(env, "LLM_TEXT_CHAR_LIMIT", cls.llm_text_char_limit),
            max_conversations=_int(env, "MAX_CONVERSATIONS_PER_RUN", cls.max_conversations),
            max_messages=_int(env, "MAX_MESSAGES_PER_RUN", cls.max_messages),
            max_runtime_sec=_float(env, "MAX_RUNTIME_SEC", cls.max_runtime_sec),
            message_pause_min_sec=_float(env, "MESSAGE_PAUSE_MIN_SEC", cls.message_pause_min_sec),
            message_pause_max_sec=_float(env, "MESSAGE_PAUSE_MAX_SEC", cls.message_pause_max_sec),
            conversation_pause_sec=_float(env, "CONVERSATION_PAUSE_SEC", cls.conversation_pause_sec),
            errors_are_terminal=_flag(env, "ERRORS_ARE_TERMINAL", False),
            run_log_dir=_str(env, "RUN_LOG_DIR", cls.run_log_dir),
        )

    def with_overrides(self, **overrides) -> "Settings":
        """Return a copy with the non-None overrides applied."""
        known = {f.name for f in fields(self)}
        clean = {k: v for k, v in overrides.items() if v is not None and k in known}
        return replace(self, **clean) if clean else self

    def validate(self) -> list[str]:
        """Return every fatal configuration problem (empty list when usable)."""
        problems: list[str] = []
        if not self.google_sheet_id:
            problems.append("GOOGLE_SHEET_ID is not set")
        if not (self.google_service_account_path or self.google_credentials_b64):
            problems.append("No Sheets credentials: set GOOGLE_SERVICE_ACCOUNT_JSON_PATH "
                            "or GOOGLE_CREDENTIALS_JSON_BASE64")
        if not self.gmail_token_path and not self.gmail_delegated_user:
            problems.append("No Gmail credentials: set GMAIL_TOKEN_PATH or GMAIL_DELEGATED_USER")
        if self.use_llm and not self.openai_api_key:
            problems.append("USE_LLM is on but OPENAI_API_KEY is missing")
        if not self.label_needs_process or not self.label_done:
            problems.append("Label names must be non-empty")
        if self.label_needs_process == self.label_done:
            problems.append("LABEL_NEEDS_PROCESS and LABEL_DONE must differ")
        for name in ("max_conversations", "max_messages"):
            if getattr(self, name) <= 0:
                problems.append(f"{name} must be positive")
        if self.max_runtime_sec <= 0:
            problems.append("max_runtime_sec must be positive")
        if self.llm_timeout_sec <= 0:
            problems.append("llm_timeout_sec must be positive")
        if self.message_pause_min_sec < 0 or self.message_pause_max_sec < self.message_pause_min_sec:
            problems.append("Message pause range is invalid")
        if self.conversation_pause_sec < 0:
            problems.append("conversation_pause_sec must not be negative")
        return problems

    def require_valid(self) -> None:
        problems = self.validate()
        if problems:
            raise ConfigError(problems)
