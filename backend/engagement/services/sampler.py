"""
Attention Sampler - produces one observation round for a running session.

The session engine only knows the AttentionSampler interface, so the
simulated random walk used by the demo can be swapped for a real detector
without touching the engine's timers or aggregation:

- RandomWalkSampler: class attention drifts by up to ±10 per round inside
  [40, 100]; each student gets an independent draw of 70 ± 20 inside
  [30, 100]; a hand raise happens with a fixed probability.
- ExternalDetectorSampler: delegates to a detector callable and normalises
  its output into the same ranges.

A sampler that cannot produce a reading raises SamplingUnavailable; the
engine then skips the round and keeps the last known values.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Sequence

from engagement import config
from engagement.schemas import RosterEntry
from engagement.services.stats import clamp, round_half_up
from engagement.logging_config import get_logger, log_with_context

logger = get_logger("sampler")


class SamplingUnavailable(Exception):
    """Raised when no reading can be produced for the current round."""


@dataclass(frozen=True)
class AttentionReading:
    """One observation round."""
    overall_attention: int
    student_samples: Dict[str, float] = field(default_factory=dict)
    hand_raised_by: Optional[RosterEntry] = None


class AttentionSampler(ABC):

    @abstractmethod
    def next_reading(self, previous_attention: int, roster: Sequence[RosterEntry]) -> AttentionReading:
        """Produce the next reading given the last class attention value."""


class RandomWalkSampler(AttentionSampler):
    """Pseudo-random stand-in for a vision pipeline."""

    def __init__(self, rng: random.Random = None,
                 hand_raise_probability: float = config.HAND_RAISE_PROBABILITY):
        self.rng = rng or random.Random()
        self.hand_raise_probability = hand_raise_probability

    def next_reading(self, previous_attention, roster):
        low, high = config.CLASS_ATTENTION_RANGE
        step = config.CLASS_ATTENTION_STEP
        drifted = previous_attention + self.rng.uniform(-step, step)
        overall = round_half_up(clamp(drifted, low, high))

        s_low, s_high = config.STUDENT_ATTENTION_RANGE
        spread = config.STUDENT_SPREAD
        samples = {
            student.id: clamp(config.STUDENT_BASELINE + self.rng.uniform(-spread, spread), s_low, s_high)
            for student in roster
        }

        hand_raised_by = None
        if roster and self.rng.random() < self.hand_raise_probability:
            hand_raised_by = roster[self.rng.randrange(len(roster))]

        return AttentionReading(overall, samples, hand_raised_by)


class ExternalDetectorSampler(AttentionSampler):
    """
    Adapter for a real detector.

    The detector is called with the roster and returns either None (no
    frame available) or a mapping with:
        "overall": class attention as a percentage
        "students": {student_id: attention percentage}
        "hand_raised": student_id or None
    Values are clamped to the same ranges the random walk uses. A detector
    that raises, or returns something unparsable, surfaces as
    SamplingUnavailable.
    """

    def __init__(self, detector: Callable[[Sequence[RosterEntry]], Optional[dict]]):
        self.detector = detector

    def next_reading(self, previous_attention, roster):
        try:
            result = self.detector(roster)
        except SamplingUnavailable:
            raise
        except Exception as exc:
            log_with_context(logger, "ERROR", f"Detector failed: {exc!r}",
                             extra_data={"previous_attention": previous_attention})
            raise SamplingUnavailable(f"detector failed: {exc}") from exc

        if result is None:
            log_with_context(logger, "WARNING", "Detector returned no reading",
                             extra_data={"previous_attention": previous_attention})
            raise SamplingUnavailable("detector returned no reading")

        try:
            return self._parse(result, previous_attention, roster)
        except (AttributeError, TypeError, ValueError) as exc:
            log_with_context(logger, "ERROR", f"Detector output rejected: {exc}",
                             extra_data={"previous_attention": previous_attention})
            raise SamplingUnavailable(f"malformed detector output: {exc}") from exc

    @staticmethod
    def _parse(result, previous_attention, roster):
        low, high = config.CLASS_ATTENTION_RANGE
        overall = round_half_up(clamp(float(result.get("overall", previous_attention)), low, high))

        s_low, s_high = config.STUDENT_ATTENTION_RANGE
        known = {student.id: student for student in roster}
        samples = {
            student_id: clamp(float(value), s_low, s_high)
            for student_id, value in (result.get("students") or {}).items()
            if student_id in known
        }

        return AttentionReading(overall, samples, known.get(result.get("hand_raised")))
