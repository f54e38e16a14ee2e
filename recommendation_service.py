from __future__ import annotations
from typing import Mapping, Optional

from program import DEFAULT_PROGRAM, ProgramConfig, WorkoutDefinition
from log_schema import date_key, is_log_complete
from algorithms.progression import DoubleProgression


class RecommendationService:
    """Generate next-set targets based on logged history."""

    def __init__(self, program: ProgramConfig | None = None) -> None:
        self.program = program or DEFAULT_PROGRAM

    def last_completed_log(
        self,
        slot: int,
        history: Mapping[str, dict] | None,
        before_date: Optional[str] = None,
    ) -> Optional[tuple[str, dict]]:
        """Return ``(date, log)`` of the latest completed session of ``slot``."""
        cutoff = date_key(before_date) if before_date else None
        for date in sorted(history or {}, reverse=True):
            if cutoff is not None and date >= cutoff:
                continue
            log = history[date]
            if not is_log_complete(log):
                continue
            if self.program.resolve_slot(log) == slot:
                return date, log
        return None

    def targets_for(
        self,
        workout: WorkoutDefinition | int,
        history: Mapping[str, dict] | None,
        before_date: Optional[str] = None,
    ) -> dict[int, list[Optional[dict]]]:
        """Return ``{exercise_id: [target per set position]}``.

        A position is ``None`` when there is no usable prior set for it.
        """
        if isinstance(workout, int):
            slot = workout
            definition = self.program.workout_for_slot(slot)
        else:
            definition = workout
            slot = self.program.slot_for_name(workout.name)
        if definition is None:
            return {}
        prior = None
        if slot is not None:
            found = self.last_completed_log(slot, history, before_date)
            prior = found[1] if found else None
        prior_exercises = {
            ex.get("id"): ex for ex in (prior or {}).get("exercises") or []
        }
        targets: dict[int, list[Optional[dict]]] = {}
        for ex in definition.exercises:
            prior_sets = (prior_exercises.get(ex.id) or {}).get("sets_data") or []
            targets[ex.id] = [
                DoubleProgression.predict_next_set(
                    ex,
                    prior_sets[i] if i < len(prior_sets) else None,
                    step=self.program.load_step,
                    increase=self.program.load_increase,
                )
                for i in range(ex.sets)
            ]
        return targets
