"""
Extraction engine – two-tier strategy behind a single ``extract`` call.

  • Primary: the AI extractor (llm_extractor) when it is configured.
  • Fallback: deterministic phrasing rules (pattern_extractor), used only
    when the primary path is structurally unavailable.  A primary answer
    with zero postings is final; so is a primary failure.

Empty bodies short-circuit to a successful "nothing to extract" result.
Candidates without a usable title are dropped here, silently, before
anything reaches the writer.
"""

from __future__ import annotations

import logging
from typing import Protocol

from job_mail_ingest.llm_extractor import LLMExtractor
from job_mail_ingest.models import ExtractionResult
from job_mail_ingest.pattern_extractor import PatternExtractor

log = logging.getLogger(__name__)


class Extractor(Protocol):
    name: str

    def available(self) -> bool: ...

    def extract(self, body: str) -> ExtractionResult: ...


class ExtractionEngine:
    """Try-primary-else-fallback composition of two extractors."""

    def __init__(self, primary: Extractor | None, fallback: Extractor):
        self.primary = primary
        self.fallback = fallback

    @classmethod
    def from_settings(cls, settings, patterns=None) -> "ExtractionEngine":
        primary = LLMExtractor.from_settings(settings) if settings.use_llm else None
        engine = cls(primary, PatternExtractor(patterns))
        log.info("Extraction engine: using %s extractor", engine.active.name)
        return engine

    @property
    def active(self) -> Extractor:
        if self.primary is not None and self.primary.available():
            return self.primary
        return self.fallback

    def extract(self, body: str) -> ExtractionResult:
        if not body or not body.strip():
            return ExtractionResult.nothing()

        result = self.active.extract(body)
        if not result.ok:
            return result

        kept = [c for c in result.candidates if c.is_valid()]
        dropped = len(result.candidates) - len(kept)
        if dropped:
            log.debug("Dropped %d candidate(s) with missing or placeholder title", dropped)
        return ExtractionResult.success(kept, source=result.source)
