from __future__ import annotations
import copy
import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from program import WorkoutDefinition


class SetRecord(BaseModel):
    set: int = Field(ge=1)
    weight: float = Field(0.0, ge=0)
    reps: int = Field(0, ge=0)
    is_done: bool = False


class ExerciseLog(BaseModel):
    id: int
    name: str
    sets: int = Field(ge=0)
    rep_range: str = ""
    rest: int = 0
    technique: str = ""
    muscle: str = ""
    sets_data: List[SetRecord] = []


class WorkoutLog(BaseModel):
    name: str
    slot: Optional[int] = None
    is_complete: bool = False
    exercises: List[ExerciseLog] = []


class RecoveryLog(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sleep_hours: Optional[float] = Field(None, ge=0, le=24)
    hrv: Optional[float] = Field(None, ge=0)
    readiness: Optional[int] = Field(None, ge=1, le=10)
    soreness: Optional[int] = Field(None, ge=1, le=10)
    cardio_duration: Optional[float] = Field(None, ge=0)
    cardio_notes: Optional[str] = None


def validate_workout_log(data: dict) -> None:
    try:
        WorkoutLog(**data)
    except ValidationError as e:
        raise ValueError(str(e))


def validate_recovery_log(data: dict) -> None:
    try:
        RecoveryLog(**data)
    except ValidationError as e:
        raise ValueError(str(e))


def date_key(day: datetime.date | datetime.datetime | str) -> str:
    """Return the ``YYYY-MM-DD`` key used for stored logs."""
    if isinstance(day, str):
        return datetime.date.fromisoformat(day[:10]).isoformat()
    if isinstance(day, datetime.datetime):
        return day.date().isoformat()
    return day.isoformat()


def parse_date(day: datetime.date | str) -> datetime.date:
    if isinstance(day, datetime.datetime):
        return day.date()
    if isinstance(day, datetime.date):
        return day
    return datetime.date.fromisoformat(day[:10])


def build_template(workout: WorkoutDefinition, slot: int | None = None) -> dict:
    """Create an empty workout log from a workout definition."""
    exercises = []
    for ex in workout.exercises:
        item = ex.model_dump()
        item["sets_data"] = [
            {"set": i + 1, "weight": 0.0, "reps": 0, "is_done": False}
            for i in range(ex.sets)
        ]
        exercises.append(item)
    return {
        "name": workout.name,
        "slot": slot,
        "is_complete": False,
        "exercises": exercises,
    }


def is_log_complete(log: dict | None) -> bool:
    """Return ``True`` when every set of every exercise is done.

    A log without any sets is never complete.
    """
    if not log:
        return False
    seen = False
    for ex in log.get("exercises") or []:
        for s in ex.get("sets_data") or []:
            seen = True
            if not s.get("is_done"):
                return False
    return seen


def with_completion(log: dict) -> dict:
    """Return a copy of ``log`` with ``is_complete`` derived from its sets."""
    out = dict(log)
    out["is_complete"] = is_log_complete(log)
    return out


def merge_log(template: dict, stored: dict | None) -> dict:
    """Overlay a persisted log onto a freshly generated template.

    Exercises are matched by id and sets by position; stored values win.
    Exercises that only exist in the stored record are kept at the end so
    nothing logged is dropped.
    """
    merged = copy.deepcopy(template)
    if not stored:
        return with_completion(merged)
    if stored.get("name"):
        merged["name"] = stored["name"]
    if stored.get("slot") is not None:
        merged["slot"] = stored["slot"]
    stored_exercises = {
        ex.get("id"): ex for ex in stored.get("exercises") or []
    }
    for ex in merged["exercises"]:
        prior = stored_exercises.pop(ex["id"], None)
        if prior is None:
            continue
        prior_sets = prior.get("sets_data") or []
        for idx, record in enumerate(ex["sets_data"]):
            if idx < len(prior_sets):
                record.update(
                    {
                        "weight": float(prior_sets[idx].get("weight", 0) or 0),
                        "reps": int(prior_sets[idx].get("reps", 0) or 0),
                        "is_done": bool(prior_sets[idx].get("is_done", False)),
                    }
                )
    for leftover in stored_exercises.values():
        merged["exercises"].append(copy.deepcopy(leftover))
    return with_completion(merged)
