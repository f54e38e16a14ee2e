from __future__ import annotations
import asyncio
import copy
import inspect
import logging
from typing import Mapping, Optional

from program import DEFAULT_PROGRAM, ProgramConfig
from log_schema import (
    build_template,
    date_key,
    merge_log,
    validate_recovery_log,
    with_completion,
)
from algorithms.workout_selector import WorkoutSelector
from recommendation_service import RecommendationService

logger = logging.getLogger(__name__)


class LogSession:
    """In-memory state of the workout being logged for one date.

    States move ``NO_WORKOUT -> LOADED`` when a workout is due and flip
    between ``LOADED`` and ``COMPLETE`` after every set edit. Each edit is
    written back with merge semantics; a failed write is logged and the
    local state is kept.
    """

    NO_WORKOUT = "no_workout"
    LOADED = "loaded"
    COMPLETE = "complete"

    def __init__(
        self,
        workout_repo,
        recovery_repo=None,
        program: ProgramConfig | None = None,
        recommender: RecommendationService | None = None,
    ) -> None:
        self.workouts = workout_repo
        self.recovery_repo = recovery_repo
        self.program = program or DEFAULT_PROGRAM
        self.recommender = recommender or RecommendationService(self.program)
        self.date: Optional[str] = None
        self.slot: Optional[int] = None
        self.log: Optional[dict] = None
        self.recovery: dict = {}
        self.state = self.NO_WORKOUT
        self._pending: list[asyncio.Task] = []

    def close(self) -> None:
        self.date = None
        self.slot = None
        self.log = None
        self.recovery = {}
        self.state = self.NO_WORKOUT

    def open(
        self,
        date,
        history: Mapping[str, dict] | None = None,
        recovery: Mapping[str, dict] | None = None,
    ) -> str:
        """Build the session for ``date`` from its template and stored data."""
        self.close()
        self.date = date_key(date)
        if history is None:
            if inspect.iscoroutinefunction(self.workouts.fetch_snapshot):
                raise ValueError("pass the current snapshot when using an async repository")
            history = self.workouts.fetch_snapshot()
        if (
            recovery is None
            and self.recovery_repo is not None
            and not inspect.iscoroutinefunction(self.recovery_repo.fetch_snapshot)
        ):
            recovery = self.recovery_repo.fetch_snapshot()
        if recovery is not None:
            self.recovery = dict(recovery.get(self.date) or {})
        self.slot = WorkoutSelector.slot_for_day(self.date, history, self.program)
        workout = self.program.workout_for_slot(self.slot)
        if workout is None:
            return self.state
        stored = history.get(self.date)
        self.log = merge_log(build_template(workout, self.slot), stored)
        self._refresh_state()
        if stored is None:
            self._persist()
        return self.state

    def _refresh_state(self) -> None:
        if self.log is None:
            self.state = self.NO_WORKOUT
            return
        self.log = with_completion(self.log)
        self.state = self.COMPLETE if self.log["is_complete"] else self.LOADED

    def _require_log(self) -> dict:
        if self.log is None:
            raise ValueError("no workout is scheduled for this date")
        return self.log

    def set_record(self, exercise_index: int, set_index: int) -> dict:
        log = self._require_log()
        if not 0 <= exercise_index < len(log["exercises"]):
            raise IndexError(f"exercise index {exercise_index} out of range")
        sets = log["exercises"][exercise_index]["sets_data"]
        if not 0 <= set_index < len(sets):
            raise IndexError(f"set index {set_index} out of range")
        return sets[set_index]

    def update_set(
        self,
        exercise_index: int,
        set_index: int,
        weight: float | None = None,
        reps: int | None = None,
        is_done: bool | None = None,
    ) -> str:
        """Apply one set edit, re-derive completion and persist the log."""
        record = self.set_record(exercise_index, set_index)
        if weight is not None and weight < 0:
            raise ValueError("weight must be non-negative")
        if reps is not None and reps < 0:
            raise ValueError("reps must be non-negative")
        if weight is not None:
            record["weight"] = float(weight)
        if reps is not None:
            record["reps"] = int(reps)
        if is_done is not None:
            record["is_done"] = bool(is_done)
        self._refresh_state()
        self._persist()
        return self.state

    def toggle_set(self, exercise_index: int, set_index: int) -> str:
        record = self.set_record(exercise_index, set_index)
        return self.update_set(exercise_index, set_index, is_done=not record["is_done"])

    def update_recovery(self, **fields) -> dict:
        """Merge recovery markers for the session date; allowed on rest days."""
        if self.date is None:
            raise ValueError("session is not open")
        merged = dict(self.recovery)
        merged.update(fields)
        validate_recovery_log(merged)
        self.recovery = merged
        if self.recovery_repo is not None:
            self._write(self.recovery_repo, "recovery log", dict(fields))
        return dict(self.recovery)

    def targets(self, history: Mapping[str, dict] | None) -> dict:
        if self.slot is None:
            return {}
        return self.recommender.targets_for(self.slot, history, before_date=self.date)

    def _persist(self) -> None:
        if self.log is None:
            return
        self._write(self.workouts, "workout log", copy.deepcopy(self.log))

    def _write(self, repo, label: str, payload: dict) -> None:
        date = self.date
        try:
            result = repo.upsert(date, payload)
        except Exception:
            logger.exception("failed to persist %s for %s", label, date)
            return
        if inspect.isawaitable(result):
            previous = self._pending[-1] if self._pending else None
            task = asyncio.ensure_future(self._after(previous, result))
            self._pending.append(task)

            def _done(t: asyncio.Task) -> None:
                self._pending.remove(t)
                if not t.cancelled() and t.exception() is not None:
                    logger.error(
                        "failed to persist %s for %s",
                        label,
                        date,
                        exc_info=t.exception(),
                    )

            task.add_done_callback(_done)

    @staticmethod
    async def _after(previous: Optional[asyncio.Future], write):
        # writes land in edit order
        if previous is not None:
            await asyncio.wait([previous])
        return await write

    async def flush(self) -> None:
        """Wait for outstanding asynchronous writes."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
