from __future__ import annotations
import datetime
import hashlib
import json
from typing import Dict, List, Mapping, Optional

from program import ProgramConfig, DEFAULT_PROGRAM
from log_schema import parse_date
from algorithms.math_tools import MathTools


def _qualifying_sets(exercise: dict):
    """Yield ``(weight, reps)`` of sets that count toward volume."""
    for s in exercise.get("sets_data") or []:
        weight = float(s.get("weight") or 0)
        reps = int(s.get("reps") or 0)
        if s.get("is_done") and weight > 0 and reps > 0:
            yield weight, reps


class StatisticsService:
    """Compute workout statistics for analysis."""

    def __init__(self, program: ProgramConfig | None = None) -> None:
        self.program = program or DEFAULT_PROGRAM
        self._cache_key: Optional[str] = None
        self._cache: Optional[dict] = None

    def clear_cache(self) -> None:
        """Clear any cached statistics."""
        self._cache_key = None
        self._cache = None

    @staticmethod
    def _fingerprint(history: Mapping[str, dict]) -> str:
        payload = json.dumps(history, sort_keys=True, default=str)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()

    @staticmethod
    def empty_kpis() -> dict:
        return {
            "total_volume": 0.0,
            "consistency_score": 0,
            "overload_ratio": 0,
            "total_sets_completed": 0,
            "weekly_volume": [],
        }

    def compute_kpis(self, history: Mapping[str, dict] | None) -> dict:
        """Aggregate the full log history into summary KPIs.

        Dates are processed in ascending order. A set is a new progressive
        overload event when its volume beats every earlier set of the same
        exercise id.
        """
        if not history:
            return self.empty_kpis()
        key = self._fingerprint(history)
        if key == self._cache_key and self._cache is not None:
            return json.loads(json.dumps(self._cache))

        total_volume = 0.0
        sets_planned = 0
        sets_completed = 0
        new_max_events = 0
        best: Dict[int, float] = {}
        weeks: Dict[str, float] = {}

        for date in sorted(history):
            log = history[date] or {}
            workout = self.program.workout_for_slot(self.program.resolve_slot(log))
            week = MathTools.week_start(parse_date(date)).isoformat()
            for ex in log.get("exercises") or []:
                ex_id = ex.get("id")
                if workout is not None:
                    definition = workout.exercise_by_id(ex_id)
                    if definition is not None:
                        sets_planned += definition.sets
                for weight, reps in _qualifying_sets(ex):
                    vol = weight * reps
                    total_volume += vol
                    sets_completed += 1
                    weeks[week] = weeks.get(week, 0.0) + vol
                    if vol > best.get(ex_id, 0.0):
                        best[ex_id] = vol
                        new_max_events += 1

        result = {
            "total_volume": round(total_volume, 2),
            "consistency_score": MathTools.percentage(
                sets_completed, sets_planned, cap=100
            ),
            "overload_ratio": MathTools.percentage(new_max_events, sets_completed),
            "total_sets_completed": sets_completed,
            "weekly_volume": [
                {"week_start": wk, "volume": MathTools.round_half_up(vol)}
                for wk, vol in sorted(weeks.items())
            ],
        }
        # only the latest history is kept
        self._cache_key = key
        self._cache = result
        return json.loads(json.dumps(result))

    def exercise_history(
        self, history: Mapping[str, dict] | None, exercise_id: int
    ) -> List[Dict[str, float]]:
        """Return every completed set of one exercise in date order."""
        rows: List[Dict[str, float]] = []
        for date in sorted(history or {}):
            for ex in history[date].get("exercises") or []:
                if ex.get("id") != exercise_id:
                    continue
                for weight, reps in _qualifying_sets(ex):
                    rows.append(
                        {
                            "date": date,
                            "exercise": ex.get("name"),
                            "weight": weight,
                            "reps": reps,
                            "volume": round(weight * reps, 2),
                            "est_1rm": round(MathTools.epley_1rm(weight, reps), 2),
                        }
                    )
        return rows

    def personal_records(
        self, history: Mapping[str, dict] | None
    ) -> List[Dict[str, float]]:
        """Return the highest volume set for each exercise."""
        records: Dict[int, Dict[str, float]] = {}
        for date in sorted(history or {}):
            for ex in history[date].get("exercises") or []:
                for weight, reps in _qualifying_sets(ex):
                    vol = weight * reps
                    current = records.get(ex.get("id"))
                    if current is None or vol > current["volume"]:
                        records[ex.get("id")] = {
                            "exercise_id": ex.get("id"),
                            "exercise": ex.get("name"),
                            "date": date,
                            "weight": weight,
                            "reps": reps,
                            "volume": round(vol, 2),
                        }
        return sorted(records.values(), key=lambda x: x["exercise_id"])

    def recovery_summary(
        self,
        recovery: Mapping[str, dict] | None,
        days: int = 7,
        today: Optional[datetime.date] = None,
    ) -> Dict[str, float]:
        """Average recovery markers over the trailing ``days`` window."""
        end = today or datetime.date.today()
        start = end - datetime.timedelta(days=days - 1)
        sleep: list[float] = []
        hrv: list[float] = []
        readiness: list[float] = []
        soreness: list[float] = []
        cardio = 0.0
        entries = 0
        for date, entry in (recovery or {}).items():
            day = parse_date(date)
            if day < start or day > end:
                continue
            entries += 1
            if entry.get("sleep_hours") is not None:
                sleep.append(entry["sleep_hours"])
            if entry.get("hrv") is not None:
                hrv.append(entry["hrv"])
            if entry.get("readiness") is not None:
                readiness.append(entry["readiness"])
            if entry.get("soreness") is not None:
                soreness.append(entry["soreness"])
            if entry.get("cardio_duration") is not None:
                cardio += float(entry["cardio_duration"])

        def avg(values: list[float]) -> float:
            mean = MathTools.mean(values)
            return round(mean, 2) if mean is not None else 0.0

        return {
            "entries": entries,
            "avg_sleep_hours": avg(sleep),
            "avg_hrv": avg(hrv),
            "avg_readiness": avg(readiness),
            "avg_soreness": avg(soreness),
            "cardio_minutes": round(cardio, 2),
        }
