from __future__ import annotations
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from config import YamlConfig


class ExerciseDefinition(BaseModel):
    """Static description of one exercise inside a workout."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    sets: int = Field(ge=1)
    rep_range: str
    rest: int = Field(0, ge=0)
    technique: str = ""
    muscle: str = ""


class WorkoutDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    exercises: Tuple[ExerciseDefinition, ...]

    def exercise_by_id(self, exercise_id: int) -> Optional[ExerciseDefinition]:
        for ex in self.exercises:
            if ex.id == exercise_id:
                return ex
        return None


class ProgramConfig(BaseModel):
    """Immutable training program: schedule table, rotation and load tuning.

    Day slots use the Sunday=0 ... Saturday=6 convention. Every slot that is
    not part of ``rotation`` is a rest day.
    """

    model_config = ConfigDict(frozen=True)

    schedule: Dict[int, WorkoutDefinition]
    rotation: Tuple[int, ...] = (1, 2, 4, 5)
    load_step: float = Field(2.5, gt=0)
    load_increase: float = Field(0.025, ge=0)

    @model_validator(mode="after")
    def _check_rotation(self) -> "ProgramConfig":
        if not self.rotation:
            raise ValueError("rotation must not be empty")
        for slot in self.rotation:
            if slot < 0 or slot > 6:
                raise ValueError(f"slot {slot} is not a weekday slot")
            if slot not in self.schedule:
                raise ValueError(f"rotation slot {slot} has no workout")
        if len(set(self.rotation)) != len(self.rotation):
            raise ValueError("rotation slots must be unique")
        return self

    @property
    def rest_slots(self) -> frozenset[int]:
        return frozenset(s for s in range(7) if s not in self.rotation)

    def workout_for_slot(self, slot: int | None) -> Optional[WorkoutDefinition]:
        if slot is None:
            return None
        return self.schedule.get(slot)

    def slot_for_name(self, name: str | None) -> Optional[int]:
        """Return the rotation slot whose workout is called ``name``."""
        if not name:
            return None
        for slot in self.rotation:
            if self.schedule[slot].name == name:
                return slot
        return None

    def exercise_by_id(self, slot: int | None, exercise_id: int) -> Optional[ExerciseDefinition]:
        workout = self.workout_for_slot(slot)
        return workout.exercise_by_id(exercise_id) if workout else None

    def rotation_index(self, slot: int | None) -> Optional[int]:
        if slot is None or slot not in self.rotation:
            return None
        return self.rotation.index(slot)

    def resolve_slot(self, log: dict) -> Optional[int]:
        """Resolve the workout slot a stored log belongs to.

        The explicit ``slot`` field wins when it names a known workout;
        older records without one fall back to matching the workout name.
        """
        slot = log.get("slot")
        if isinstance(slot, int) and not isinstance(slot, bool) and slot in self.schedule:
            return slot
        return self.slot_for_name(log.get("name"))

    def with_loading(self, load_step: float, load_increase: float) -> "ProgramConfig":
        """Return a copy using different load rounding and increase."""
        return self.from_dict(
            {**self.to_dict(), "load_step": load_step, "load_increase": load_increase}
        )

    def to_dict(self) -> dict:
        data = self.model_dump()
        data["rotation"] = list(self.rotation)
        for workout in data["schedule"].values():
            workout["exercises"] = list(workout["exercises"])
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ProgramConfig":
        try:
            return cls(**data)
        except ValidationError as e:
            raise ValueError(str(e))

    @classmethod
    def from_yaml(cls, path: str) -> "ProgramConfig":
        return cls.from_dict(YamlConfig(path).load_document(path))


def _ex(id, name, sets, rep_range, rest, technique, muscle) -> ExerciseDefinition:
    return ExerciseDefinition(
        id=id,
        name=name,
        sets=sets,
        rep_range=rep_range,
        rest=rest,
        technique=technique,
        muscle=muscle,
    )


DEFAULT_PROGRAM = ProgramConfig(
    schedule={
        1: WorkoutDefinition(
            name="Upper Body A",
            exercises=(
                _ex(1, "Barbell Bench Press", 3, "6-8", 180, "Retract the shoulder blades and keep the feet planted.", "Chest"),
                _ex(2, "Chest Supported Row", 3, "8-10", 120, "Pull the elbows to the hips and pause at the top.", "Back"),
                _ex(3, "Seated Dumbbell Press", 3, "8-10", 120, "Stop just short of lockout to keep tension.", "Shoulders"),
                _ex(4, "Lat Pulldown", 3, "10-12", 90, "Lead with the elbows and avoid leaning back.", "Back"),
                _ex(5, "Cable Triceps Pushdown", 2, "12-15", 60, "Keep the upper arms pinned to the torso.", "Triceps"),
            ),
        ),
        2: WorkoutDefinition(
            name="Lower Body A",
            exercises=(
                _ex(6, "Back Squat", 3, "6-8", 180, "Brace before descending and drive through the midfoot.", "Quads"),
                _ex(7, "Romanian Deadlift", 3, "8-10", 150, "Push the hips back and keep the bar close.", "Hamstrings"),
                _ex(8, "Walking Lunge", 2, "10-12", 90, "Take long strides and keep the torso upright.", "Glutes"),
                _ex(9, "Standing Calf Raise", 3, "12-15", 60, "Pause for a second in the stretched position.", "Calves"),
            ),
        ),
        4: WorkoutDefinition(
            name="Upper Body B",
            exercises=(
                _ex(10, "Incline Dumbbell Press", 3, "8-10", 120, "Lower under control to chest level.", "Chest"),
                _ex(11, "Weighted Pull Up", 3, "6-8", 150, "Start from a dead hang every rep.", "Back"),
                _ex(12, "Cable Lateral Raise", 3, "12-15", 60, "Raise out to the side, not in front.", "Shoulders"),
                _ex(13, "Seated Cable Row", 3, "10-12", 90, "Squeeze the shoulder blades together.", "Back"),
                _ex(14, "EZ Bar Curl", 2, "10-12", 60, "No swinging; keep the elbows still.", "Biceps"),
            ),
        ),
        5: WorkoutDefinition(
            name="Lower Body B",
            exercises=(
                _ex(15, "Conventional Deadlift", 3, "4-6", 210, "Take the slack out of the bar before pulling.", "Posterior Chain"),
                _ex(16, "Leg Press", 3, "10-12", 120, "Do not let the lower back round off the pad.", "Quads"),
                _ex(17, "Lying Leg Curl", 3, "10-12", 90, "Control the eccentric for three seconds.", "Hamstrings"),
                _ex(18, "Hanging Leg Raise", 3, "10-15", 60, "Curl the pelvis up instead of swinging.", "Core"),
            ),
        ),
    },
)


def program_from_settings(settings) -> ProgramConfig:
    """Load the configured program file, or tune the default program.

    A program file carries its own load settings; the ``load_step`` and
    ``load_increase`` settings only apply to the built-in program.
    """
    path = settings.get_text("program_path", "")
    if path:
        return ProgramConfig.from_yaml(path)
    return DEFAULT_PROGRAM.with_loading(
        settings.get_float("load_step", DEFAULT_PROGRAM.load_step),
        settings.get_float("load_increase", DEFAULT_PROGRAM.load_increase),
    )
