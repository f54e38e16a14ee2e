import math
import datetime
from typing import Iterable, Optional
import numpy as np

class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    EPL_COEFF: float = 0.0333
    ROUNDING_DIGITS: int = 9

    @classmethod
    def epley_1rm(cls, weight: float, reps: int, factor: float = 1.0) -> float:
        """Return the estimated one-rep max using the Epley formula."""
        if reps < 0:
            raise ValueError("reps must be non-negative")
        rep_term = min(reps, 8)
        return weight * (1 + cls.EPL_COEFF * rep_term) * factor

    @staticmethod
    def round_half_up(value: float) -> int:
        """Round to the nearest integer with halves going up."""
        return int(math.floor(value + 0.5))

    @classmethod
    def round_up_to_step(cls, value: float, step: float) -> float:
        """Round ``value`` up to the next multiple of ``step``.

        The quotient is rounded to a few decimals first so float noise such
        as ``32.000000001`` does not jump a whole step.
        """
        if step <= 0:
            raise ValueError("step must be positive")
        units = math.ceil(round(value / step, cls.ROUNDING_DIGITS))
        return round(units * step, cls.ROUNDING_DIGITS)

    @staticmethod
    def weekday_slot(day: datetime.date) -> int:
        """Return the weekday with Sunday as 0 and Saturday as 6."""
        return (day.weekday() + 1) % 7

    @classmethod
    def week_start(cls, day: datetime.date) -> datetime.date:
        """Return the most recent Sunday on or before ``day``."""
        return day - datetime.timedelta(days=cls.weekday_slot(day))

    @staticmethod
    def mean(values: Iterable[float]) -> Optional[float]:
        data = [float(v) for v in values]
        if not data:
            return None
        return float(np.mean(data))

    @staticmethod
    def percentage(part: float, whole: float, cap: float | None = None) -> int:
        """Return ``part`` as a rounded percentage of ``whole``.

        Zero is returned when ``whole`` is zero.
        """
        if whole == 0:
            return 0
        pct = 100.0 * part / whole
        if cap is not None:
            pct = min(cap, pct)
        return MathTools.round_half_up(pct)
