"""Unit tests for the two-tier extraction engine.

Covers:
  1. Empty-body short circuit
  2. Try-primary-else-fallback selection
  3. Candidate quality filtering (missing / sentinel titles)
"""
from __future__ import annotations

import dataclasses

import pytest

from conftest import ScriptedPrimary, fail, job, ok
from job_mail_ingest.extraction import ExtractionEngine
from job_mail_ingest.pattern_extractor import PatternExtractor

APPLIED = "Thank you for applying for the Data Analyst position at Initech."


class TestEmptyBody:

    @pytest.mark.parametrize("body", ["", "   ", "\n\t  \n", None])
    def test_blank_body_is_nothing_to_extract(self, engine, primary, body):
        result = engine.extract(body)
        assert result.ok
        assert result.candidates == ()
        assert result.reason == "empty body"
        assert primary.calls == []


class TestSelection:

    def test_primary_is_used_when_available(self, engine, primary):
        result = engine.extract("alert")
        assert result.source == "llm"
        assert primary.calls == ["alert"]

    def test_primary_with_zero_postings_does_not_fall_back(self):
        primary = ScriptedPrimary(default=ok())
        engine = ExtractionEngine(primary, PatternExtractor())
        result = engine.extract(APPLIED)
        assert result.ok and result.candidates == ()
        assert result.source == "llm"

    def test_primary_failure_is_returned_not_retried_with_fallback(self):
        engine = ExtractionEngine(ScriptedPrimary(default=fail("AI service error", "503")),
                                  PatternExtractor())
        result = engine.extract(APPLIED)
        assert not result.ok
        assert result.detail == "503"

    def test_unavailable_primary_falls_back_to_patterns(self):
        primary = ScriptedPrimary(available=False)
        engine = ExtractionEngine(primary, PatternExtractor())
        result = engine.extract(APPLIED)
        assert result.source == "pattern"
        assert result.candidates[0].job_title == "Data Analyst"
        assert primary.calls == []

    def test_no_primary_uses_fallback(self):
        engine = ExtractionEngine(None, PatternExtractor())
        assert engine.active.name == "pattern"

    def test_from_settings_without_llm(self, settings):
        engine = ExtractionEngine.from_settings(dataclasses.replace(settings, use_llm=False))
        assert engine.primary is None
        assert engine.active.name == "pattern"

    def test_from_settings_with_llm(self, settings):
        engine = ExtractionEngine.from_settings(settings)
        assert engine.active.name == "llm"


class TestCandidateFiltering:

    @pytest.mark.parametrize("title", ["N/A", "n/a", "ERROR", "Error", "", "   ", None])
    def test_unusable_titles_are_dropped(self, title):
        engine = ExtractionEngine(ScriptedPrimary(default=ok(job(title), job("Engineer"))),
                                  PatternExtractor())
        result = engine.extract("alert")
        assert result.ok
        assert [c.job_title for c in result.candidates] == ["Engineer"]

    def test_only_sentinels_is_successful_but_empty(self):
        engine = ExtractionEngine(ScriptedPrimary(default=ok(job("N/A"))), PatternExtractor())
        result = engine.extract("alert")
        assert result.ok
        assert result.candidates == ()
