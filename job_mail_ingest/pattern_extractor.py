"""
Deterministic fallback extractor.

Matches the plain-text body against a small set of well-known
application-email phrasings (see rules/fallback_patterns.yml) and
recovers title, company and status from them.  Conservative: when no
rule matches, or a rule matches but no job title can be found, the
result is an empty candidate list.  Nothing is guessed.
"""

import logging
import re

from job_mail_ingest.config import load_fallback_patterns
from job_mail_ingest.models import ExtractionResult, RecordCandidate, is_valid_title

log = logging.getLogger(__name__)

SOURCE = "pattern"

# Captured fragments longer than this are almost certainly a runaway match
_MAX_FIELD_LEN = 120

_WS_RE = re.compile(r"\s+")
_TRAILING_JUNK_RE = re.compile(r"[\s\-–:;,'\"]+$")


def _clean(value):
    if not value:
        return ""
    value = _WS_RE.sub(" ", value).strip()
    value = _TRAILING_JUNK_RE.sub("", value)
    return value if len(value) <= _MAX_FIELD_LEN else ""


class PatternExtractor:
    """Rule-based extractor used when the AI service is not available."""

    name = SOURCE

    def __init__(self, patterns=None):
        self.patterns = patterns if patterns is not None else load_fallback_patterns()

    def available(self) -> bool:
        return True

    def match(self, text):
        """Return (rule_name, RecordCandidate) for the first matching rule, or None."""
        for rule in self.patterns["rules"]:
            if rule["requires"] is not None and not rule["requires"].search(text):
                continue
            m = rule["pattern"].search(text)
            if not m:
                continue

            groups = m.groupdict()
            title = _clean(groups.get("title"))
            if not title and self.patterns["default_title"] is not None:
                tm = self.patterns["default_title"].search(text)
                title = _clean(tm.group("title")) if tm else ""
            if not is_valid_title(title):
                log.debug("Fallback rule %s matched but no title found", rule["name"])
                continue

            candidate = RecordCandidate(
                job_title=title,
                company=_clean(groups.get("company")) or None,
                status=rule["status"],
            )
            return rule["name"], candidate
        return None

    def extract(self, body: str) -> ExtractionResult:
        text = body or ""
        hit = self.match(text)
        if hit is None:
            log.debug("Fallback: no known phrasing matched (%d chars)", len(text))
            return ExtractionResult.success([], source=SOURCE)
        rule_name, candidate = hit
        log.info("Fallback rule %s -> title=%r company=%r status=%s",
                 rule_name, candidate.job_title, candidate.company, candidate.status.value)
        return ExtractionResult.success([candidate], source=SOURCE)
