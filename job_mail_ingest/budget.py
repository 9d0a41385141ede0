"""
Run budget – three independent caps per run plus pacing.

  • conversations scanned      (MAX_CONVERSATIONS_PER_RUN)
  • messages sent to extraction (MAX_MESSAGES_PER_RUN)
  • wall-clock seconds since run start (MAX_RUNTIME_SEC)

Hitting any cap stops the loop cleanly; whatever was not reached keeps
its NeedsProcess label for the next run.  Between extractions the loop
sleeps a random 1-3 s (AI service rate limits); between conversations a
short fixed pause.  Clock, sleep and RNG are injectable for tests.
"""

from __future__ import annotations

import logging
import random
import time
from enum import Enum

log = logging.getLogger(__name__)


class StopReason(str, Enum):
    COMPLETED = "completed"
    CONVERSATION_CAP = "conversation_cap"
    MESSAGE_CAP = "message_cap"
    RUNTIME = "runtime"


class RunBudget:
    def __init__(self, max_conversations: int, max_messages: int, max_runtime_sec: float,
                 message_pause=(1.0, 3.0), conversation_pause: float = 0.5,
                 clock=time.monotonic, sleep=time.sleep, rng=None):
        self.max_conversations = max_conversations
        self.max_messages = max_messages
        self.max_runtime_sec = max_runtime_sec
        self.message_pause = message_pause
        self.conversation_pause = conversation_pause
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.started_at = clock()
        self.conversations_started = 0
        self.messages_attempted = 0
        self.stop_reason: StopReason | None = None

    @classmethod
    def from_settings(cls, settings, clock=time.monotonic, sleep=time.sleep, rng=None) -> "RunBudget":
        return cls(
            max_conversations=settings.max_conversations,
            max_messages=settings.max_messages,
            max_runtime_sec=settings.max_runtime_sec,
            message_pause=(settings.message_pause_min_sec, settings.message_pause_max_sec),
            conversation_pause=settings.conversation_pause_sec,
            clock=clock, sleep=sleep, rng=rng,
        )

    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def _stop(self, reason: StopReason) -> StopReason:
        if self.stop_reason is None:
            self.stop_reason = reason
            log.info("Run budget reached: %s (conversations=%d messages=%d elapsed=%.1fs)",
                     reason.value, self.conversations_started, self.messages_attempted, self.elapsed())
        return reason

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_conversation(self) -> StopReason | None:
        """Return why no further conversation may start, or None."""
        if self.stop_reason is not None:
            return self.stop_reason
        if self.elapsed() >= self.max_runtime_sec:
            return self._stop(StopReason.RUNTIME)
        if self.conversations_started >= self.max_conversations:
            return self._stop(StopReason.CONVERSATION_CAP)
        if self.messages_attempted >= self.max_messages:
            return self._stop(StopReason.MESSAGE_CAP)
        return None

    def check_message(self) -> StopReason | None:
        """Return why no further message may be extracted, or None."""
        if self.stop_reason is not None:
            return self.stop_reason
        if self.elapsed() >= self.max_runtime_sec:
            return self._stop(StopReason.RUNTIME)
        if self.messages_attempted >= self.max_messages:
            return self._stop(StopReason.MESSAGE_CAP)
        return None

    # ------------------------------------------------------------------
    # Accounting + pacing
    # ------------------------------------------------------------------

    def begin_conversation(self) -> None:
        if self.conversations_started and self.conversation_pause > 0:
            self._sleep(self.conversation_pause)
        self.conversations_started += 1

    def begin_message(self) -> StopReason | None:
        """Pause before the next extraction and count it.

        Returns RUNTIME, without counting the message, when the pause
        itself used up the remaining wall-clock budget.
        """
        if self.messages_attempted:
            low, high = self.message_pause
            if high > 0:
                self._sleep(self._rng.uniform(low, high))
                if self.elapsed() >= self.max_runtime_sec:
                    return self._stop(StopReason.RUNTIME)
        self.messages_attempted += 1
        return None
