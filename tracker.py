from __future__ import annotations
import datetime
import logging
from typing import Callable, Mapping, Optional

from program import DEFAULT_PROGRAM, ProgramConfig
from log_schema import date_key
from algorithms.workout_selector import WorkoutSelector
from stats_service import StatisticsService
from recommendation_service import RecommendationService

logger = logging.getLogger(__name__)


def default_views(date: Optional[str] = None) -> dict:
    return {
        "ready": False,
        "date": date,
        "due_slot": None,
        "due_workout": None,
        "next_slot": None,
        "next_workout": None,
        "kpis": StatisticsService.empty_kpis(),
        "targets": {},
        "recovery": {},
    }


class TrackerCore:
    """Turn storage snapshots into derived views.

    ``ingest`` is the only entry point for new data: every snapshot is
    recomputed in the same order (selection, rotation, KPIs, targets), so
    two ingests of the same snapshot give the same views. Until a user id
    and the first snapshot are available the views stay at their defaults.
    """

    def __init__(
        self,
        program: ProgramConfig | None = None,
        user_id: Optional[str] = None,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        self.program = program or DEFAULT_PROGRAM
        self.user_id = user_id
        self._today = today
        self.active_date: str = date_key(today())
        self.statistics = StatisticsService(self.program)
        self.recommender = RecommendationService(self.program)
        self.history: Optional[dict] = None
        self.recovery: dict = {}
        self.views = default_views(self.active_date)
        self._unsubscribe: list[Callable[[], None]] = []

    @property
    def ready(self) -> bool:
        return bool(self.user_id) and self.history is not None

    def set_user(self, user_id: Optional[str]) -> dict:
        self.user_id = user_id
        return self.recompute()

    def set_date(self, date) -> dict:
        self.active_date = date_key(date)
        return self.recompute()

    def ingest(
        self,
        snapshot: Mapping[str, dict] | None,
        recovery_snapshot: Mapping[str, dict] | None = None,
    ) -> dict:
        self.history = dict(snapshot or {})
        if recovery_snapshot is not None:
            self.recovery = dict(recovery_snapshot)
        return self.recompute()

    def ingest_recovery(self, recovery_snapshot: Mapping[str, dict] | None) -> dict:
        self.recovery = dict(recovery_snapshot or {})
        return self.recompute()

    def recompute(self) -> dict:
        if not self.ready:
            self.views = default_views(self.active_date)
            return self.views
        history = self.history or {}
        logger.debug(
            "recomputing views for %s from %d logs", self.active_date, len(history)
        )
        due_slot = WorkoutSelector.due_slot(self.active_date, history, self.program)
        next_slot = WorkoutSelector.next_slot(history, self.program)
        due = self.program.workout_for_slot(due_slot)
        views = {
            "ready": True,
            "date": self.active_date,
            "due_slot": due_slot,
            "due_workout": due.model_dump() if due else None,
            "next_slot": next_slot,
            "next_workout": self.program.schedule[next_slot].model_dump(),
            "kpis": self.statistics.compute_kpis(history),
            "targets": {},
            "recovery": dict(self.recovery.get(self.active_date) or {}),
        }
        if due_slot is not None:
            views["targets"] = self.recommender.targets_for(
                due_slot, history, before_date=self.active_date
            )
        self.views = views
        return views

    def attach(self, workout_repo, recovery_repo=None) -> None:
        """Subscribe to the repositories so every write refreshes the views."""
        self._unsubscribe.append(workout_repo.subscribe(self.ingest))
        if recovery_repo is not None:
            self._unsubscribe.append(recovery_repo.subscribe(self.ingest_recovery))

    def detach(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
