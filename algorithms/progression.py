from __future__ import annotations
import re
from typing import Optional

from .math_tools import MathTools

_RANGE = re.compile(r"^\s*(\d+)\s*(?:-\s*(\d+)\s*)?$")


class DoubleProgression:
    """Suggest the next set using double progression.

    Reps climb inside the configured range at a fixed load. Once the top
    of the range is reached the load goes up by ``increase`` (rounded up to
    the next ``step``) and reps drop back to the bottom of the range.
    """

    LOAD_STEP: float = 2.5
    LOAD_INCREASE: float = 0.025

    @staticmethod
    def parse_rep_range(rep_range: str | None) -> Optional[tuple[int, int]]:
        """Return ``(min_reps, max_reps)`` or ``None`` when unparseable."""
        if not rep_range:
            return None
        match = _RANGE.match(str(rep_range))
        if match is None:
            return None
        low = int(match.group(1))
        high = int(match.group(2)) if match.group(2) is not None else low
        if low > high:
            low, high = high, low
        return low, high

    @classmethod
    def predict_next_set(
        cls,
        exercise: dict,
        prior_set: dict | None,
        step: float | None = None,
        increase: float | None = None,
    ) -> Optional[dict]:
        """Return ``{"target_weight", "target_reps"}`` for the next attempt.

        ``exercise`` is anything exposing ``rep_range`` (a definition or an
        exercise log). ``None`` is returned when there is nothing to
        progress from.
        """
        if not prior_set:
            return None
        weight = float(prior_set.get("weight") or 0)
        if weight <= 0:
            return None
        rep_range = (
            exercise.get("rep_range")
            if isinstance(exercise, dict)
            else getattr(exercise, "rep_range", None)
        )
        bounds = cls.parse_rep_range(rep_range)
        if bounds is None:
            return None
        min_reps, max_reps = bounds
        reps = int(prior_set.get("reps") or 0)
        step = cls.LOAD_STEP if step is None else step
        increase = cls.LOAD_INCREASE if increase is None else increase

        if reps < min_reps:
            return {"target_weight": weight, "target_reps": min_reps}
        if reps < max_reps:
            return {"target_weight": weight, "target_reps": reps + 1}
        return {
            "target_weight": MathTools.round_up_to_step(weight * (1 + increase), step),
            "target_reps": min_reps,
        }
