"""Unit tests for the conversation label state machine.

Covers:
  1. Reading the state from a label set (including Both / Neither)
  2. Transition table per outcome
  3. Missing Done label
"""
from __future__ import annotations

import pytest

from job_mail_ingest.label_state import LabelChange, LabelState, Outcome, plan_transition, state_from_labels

N, D = "L_needs", "L_done"


class TestStateFromLabels:

    @pytest.mark.parametrize("labels,expected", [
        ({N}, LabelState.NEEDS_PROCESS),
        ({D}, LabelState.DONE),
        ({N, D}, LabelState.BOTH),
        (set(), LabelState.NEITHER),
        ({"INBOX", "UNREAD"}, LabelState.NEITHER),
        ({N, "INBOX"}, LabelState.NEEDS_PROCESS),
    ])
    def test_states(self, labels, expected):
        assert state_from_labels(labels, N, D) is expected

    def test_missing_done_label_never_reads_as_done(self):
        assert state_from_labels({N}, N, None) is LabelState.NEEDS_PROCESS
        assert state_from_labels(set(), N, None) is LabelState.NEITHER


class TestTransitions:

    @pytest.mark.parametrize("outcome", [Outcome.SUCCEEDED, Outcome.NOTHING_NEW])
    def test_finished_moves_to_done(self, outcome):
        assert plan_transition(outcome, LabelState.NEEDS_PROCESS, N, D) == LabelChange(remove=(N,), add=(D,))

    def test_finished_from_both_only_drops_needs_process(self):
        assert plan_transition(Outcome.SUCCEEDED, LabelState.BOTH, N, D) == LabelChange(remove=(N,))

    @pytest.mark.parametrize("outcome", [Outcome.FAILED, Outcome.INTERRUPTED])
    def test_unfinished_keeps_needs_process(self, outcome):
        change = plan_transition(outcome, LabelState.NEEDS_PROCESS, N, D)
        assert change.is_noop

    def test_failed_from_both_drops_done(self):
        assert plan_transition(Outcome.FAILED, LabelState.BOTH, N, D) == LabelChange(remove=(D,))

    def test_failed_from_neither_restores_needs_process(self):
        assert plan_transition(Outcome.FAILED, LabelState.NEITHER, N, D) == LabelChange(add=(N,))

    def test_empty_conversation_only_loses_needs_process(self):
        assert plan_transition(Outcome.EMPTY, LabelState.NEEDS_PROCESS, N, D) == LabelChange(remove=(N,))
        assert plan_transition(Outcome.EMPTY, LabelState.NEITHER, N, D).is_noop

    def test_missing_done_label_is_remove_only(self):
        assert plan_transition(Outcome.SUCCEEDED, LabelState.NEEDS_PROCESS, N, None) == LabelChange(remove=(N,))

    def test_finished_change_never_leaves_both(self):
        for state in LabelState:
            change = plan_transition(Outcome.SUCCEEDED, state, N, D)
            labels = {
                LabelState.NEEDS_PROCESS: {N}, LabelState.DONE: {D},
                LabelState.BOTH: {N, D}, LabelState.NEITHER: set(),
            }[state]
            after = (labels - set(change.remove)) | set(change.add)
            assert after == {D}
