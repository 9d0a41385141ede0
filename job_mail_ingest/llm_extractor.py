"""
LLM-based job posting extraction (OpenAI chat completions).

Primary extraction path.  The plain-text body of one email is sent with
a fixed instruction template; the model answers with a JSON list of
postings ``{jobTitle, company, location, link}``.

Network/service errors and unparseable answers come back as
``ExtractionResult.failure`` with a readable reason and the raw detail –
nothing here raises into the caller.  Every call carries an explicit
timeout so one hung request cannot stall the run past its budget.
"""

import json
import logging
import re

from openai import OpenAI

from job_mail_ingest.models import ExtractionResult, RecordCandidate

log = logging.getLogger(__name__)

SOURCE = "llm"

# ---- System prompt for structured extraction ----
_SYSTEM_PROMPT = """\
You are a data extraction assistant.  Your ONLY job is to pull job
postings out of the email text the user provides.

RULES:
1. The email is either a job alert (one or more postings) or a message
   about a single application (confirmation, viewed, interview, rejection).
2. Return one entry per distinct job posting mentioned in the email.
3. Copy the job title and company exactly as written.  Do not invent,
   translate or normalise them.
4. Use null for location or link when the email does not state them.
5. If the email mentions no job posting at all, return an empty list.
6. Never use placeholder titles such as "N/A" or "Error"; omit the
   posting instead.

Respond ONLY with valid JSON – no markdown fences, no commentary.
"""

_USER_PROMPT_TEMPLATE = """\
Extract the job postings from this email.

EMAIL TEXT (first {char_limit} chars):
---
{text}
---

Return a JSON object with this exact structure:
{{
  "jobs": [
    {{"jobTitle": "<string>", "company": "<string|null>", "location": "<string|null>", "link": "<string|null>"}}
  ]
}}
"""

# Maximum characters of email text sent to the LLM
DEFAULT_TEXT_CHAR_LIMIT = 12_000

# Output cap; a long job-alert digest fits comfortably
_MAX_TOKENS = 1200


# ------------------------------------------------------------------
# OpenAI client
# ------------------------------------------------------------------

def build_client(api_key, timeout=45.0, max_retries=2):
    """Return an OpenAI client with a per-request timeout, or None without a key."""
    if not api_key:
        log.warning("OPENAI_API_KEY not set – LLM extraction unavailable")
        return None

    client = OpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
    log.info("OpenAI client initialised (timeout=%.0fs, max_retries=%d)", timeout, max_retries)
    return client


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------

class LLMExtractor:
    """Extracts postings by asking the chat model."""

    name = SOURCE

    def __init__(self, client, model="gpt-4o-mini", char_limit=DEFAULT_TEXT_CHAR_LIMIT):
        self.client = client
        self.model = model
        self.char_limit = char_limit

    @classmethod
    def from_settings(cls, settings):
        client = build_client(settings.openai_api_key,
                              timeout=settings.llm_timeout_sec,
                              max_retries=settings.llm_max_retries)
        return cls(client, model=settings.openai_model, char_limit=settings.llm_text_char_limit)

    def available(self) -> bool:
        return self.client is not None

    def extract(self, body: str) -> ExtractionResult:
        """Send *body* to the model and return its postings as candidates."""
        if self.client is None:
            return ExtractionResult.failure("AI service unavailable", source=SOURCE)

        # Truncate text to stay within budget
        truncated = body[:self.char_limit]
        user_prompt = _USER_PROMPT_TEMPLATE.format(char_limit=self.char_limit, text=truncated)

        try:
            log.info("LLM extraction: sending %d chars (model=%s)", len(truncated), self.model)
            response = self.client.chat.completions.create(
                model=self.model,
                temperature=0.0,
                max_tokens=_MAX_TOKENS,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
            )
            raw = response.choices[0].message.content or ""
        except Exception as exc:
            log.warning("LLM extraction failed: %s", exc)
            return ExtractionResult.failure("AI service error", detail=f"{type(exc).__name__}: {exc}",
                                            source=SOURCE)

        log.debug("LLM raw response: %s", raw[:500])

        # Log token usage for cost tracking
        usage = getattr(response, "usage", None)
        if usage:
            log.info("LLM tokens: prompt=%s completion=%s total=%s",
                     usage.prompt_tokens, usage.completion_tokens, usage.total_tokens)

        postings = _parse_llm_response(raw)
        if postings is None:
            return ExtractionResult.failure("Malformed AI response", detail=raw[:500], source=SOURCE)

        candidates = [_to_candidate(p) for p in postings]
        return ExtractionResult.success(candidates, source=SOURCE)


# ------------------------------------------------------------------
# Internal: response parsing
# ------------------------------------------------------------------

def _text_or_none(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_candidate(posting: dict) -> RecordCandidate:
    return RecordCandidate(
        job_title=_text_or_none(posting.get("jobTitle")),
        company=_text_or_none(posting.get("company")),
        location=_text_or_none(posting.get("location")),
        link=_text_or_none(posting.get("link")),
    )


def _parse_llm_response(raw: str):
    """Parse the raw LLM text into a list of posting dicts.

    Accepts ``{"jobs": [...]}`` or a bare list.  Handles common quirks:
    markdown fences, trailing commas.  Returns None when the answer is
    not usable JSON of that shape.
    """
    # Strip markdown code fences if present
    raw = (raw or "").strip()
    raw = re.sub(r"^```(?:json)?\s*", "", raw)
    raw = re.sub(r"\s*```$", "", raw)
    raw = raw.strip()

    if not raw:
        return None

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        # Try fixing trailing commas
        cleaned = re.sub(r",\s*([\]}])", r"\1", raw)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            log.warning("Cannot parse LLM JSON: %s", raw[:300])
            return None

    if isinstance(data, dict):
        data = data.get("jobs")
    if not isinstance(data, list):
        log.warning("LLM JSON has no jobs list: %s", raw[:300])
        return None

    return [item for item in data if isinstance(item, dict)]
