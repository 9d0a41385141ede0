"""
Conversation label state machine.

Each conversation carries NeedsProcess, Done, both, or neither.  Both
and neither are ordinary states (a half-applied earlier transition, or
a manual relabel), not errors.  After a conversation has been attempted
the processor reports an outcome, and ``plan_transition`` turns
(outcome, current state) into one label change:

    outcome       target          change
    -----------   -------------   ------------------------------
    succeeded     Done            -NeedsProcess  +Done
    nothing_new   Done            -NeedsProcess  +Done
    failed        NeedsProcess    -Done  (+NeedsProcess if missing)
    interrupted   NeedsProcess    -Done  (+NeedsProcess if missing)
    empty         (neither)       -NeedsProcess
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LabelState(str, Enum):
    NEEDS_PROCESS = "NeedsProcess"
    DONE = "Done"
    BOTH = "Both"
    NEITHER = "Neither"


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"       # every attempted message returned a result
    NOTHING_NEW = "nothing_new"   # every message already processed
    FAILED = "failed"             # at least one extraction failed
    INTERRUPTED = "interrupted"   # a run budget ran out mid-conversation
    EMPTY = "empty"               # conversation has no messages


def state_from_labels(label_ids, needs_id: str, done_id: str | None) -> LabelState:
    labels = set(label_ids or ())
    needs = needs_id in labels
    done = done_id is not None and done_id in labels
    if needs and done:
        return LabelState.BOTH
    if needs:
        return LabelState.NEEDS_PROCESS
    if done:
        return LabelState.DONE
    return LabelState.NEITHER


@dataclass(frozen=True)
class LabelChange:
    remove: tuple[str, ...] = ()
    add: tuple[str, ...] = ()

    @property
    def is_noop(self) -> bool:
        return not self.remove and not self.add


def plan_transition(outcome: Outcome, current: LabelState,
                    needs_id: str, done_id: str | None) -> LabelChange:
    """Return the label change that moves a conversation to its target state.

    With *done_id* None (Done label missing) a completed conversation is
    only removed from NeedsProcess; the caller warns about it.
    """
    has_needs = current in (LabelState.NEEDS_PROCESS, LabelState.BOTH)
    has_done = current in (LabelState.DONE, LabelState.BOTH)

    if outcome in (Outcome.SUCCEEDED, Outcome.NOTHING_NEW):
        remove = (needs_id,) if has_needs else ()
        add = (done_id,) if done_id is not None and not has_done else ()
        return LabelChange(remove=remove, add=add)

    if outcome in (Outcome.FAILED, Outcome.INTERRUPTED):
        remove = (done_id,) if has_done and done_id is not None else ()
        add = (needs_id,) if not has_needs else ()
        return LabelChange(remove=remove, add=add)

    if outcome is Outcome.EMPTY:
        return LabelChange(remove=(needs_id,) if has_needs else ())

    raise ValueError(f"unknown outcome {outcome!r}")
