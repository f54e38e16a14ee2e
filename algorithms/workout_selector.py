from __future__ import annotations
import datetime
from typing import Mapping, Optional

from program import ProgramConfig, WorkoutDefinition
from log_schema import is_log_complete, parse_date
from .math_tools import MathTools


class WorkoutSelector:
    """Pick the workout that is due on a given day.

    The program's rotation is cyclic: after a completed session the next
    slot in the rotation is due on the next lifting day, whatever the
    calendar weekday is.
    """

    @staticmethod
    def last_completed(history: Mapping[str, dict]) -> Optional[tuple[str, dict]]:
        """Return ``(date, log)`` of the most recently completed workout."""
        done = [
            (date, log)
            for date, log in (history or {}).items()
            if is_log_complete(log)
        ]
        if not done:
            return None
        done.sort(key=lambda item: item[0], reverse=True)
        return done[0]

    @classmethod
    def next_slot(
        cls, history: Mapping[str, dict], program: ProgramConfig
    ) -> int:
        """Return the rotation slot that follows the last completed session."""
        last = cls.last_completed(history)
        if last is None:
            return program.rotation[0]
        idx = program.rotation_index(program.resolve_slot(last[1]))
        if idx is None:
            return program.rotation[0]
        return program.rotation[(idx + 1) % len(program.rotation)]

    @classmethod
    def is_rest_day(cls, day: datetime.date | str, program: ProgramConfig) -> bool:
        return MathTools.weekday_slot(parse_date(day)) in program.rest_slots

    @classmethod
    def due_slot(
        cls,
        day: datetime.date | str,
        history: Mapping[str, dict],
        program: ProgramConfig,
    ) -> Optional[int]:
        if cls.is_rest_day(day, program):
            return None
        return cls.next_slot(history, program)

    @classmethod
    def due_workout(
        cls,
        day: datetime.date | str,
        history: Mapping[str, dict],
        program: ProgramConfig,
    ) -> Optional[WorkoutDefinition]:
        """Return the workout due on ``day`` or ``None`` on a rest day."""
        return program.workout_for_slot(cls.due_slot(day, history, program))

    @classmethod
    def slot_for_day(
        cls,
        day: datetime.date | str,
        history: Mapping[str, dict],
        program: ProgramConfig,
    ) -> Optional[int]:
        """Return the slot to log on ``day``.

        A log already stored for ``day`` keeps its own workout, so finishing
        it does not move the day on to the next slot. Otherwise only
        sessions before ``day`` decide the rotation.
        """
        if cls.is_rest_day(day, program):
            return None
        key = parse_date(day).isoformat()
        stored = (history or {}).get(key)
        if stored:
            slot = program.resolve_slot(stored)
            if slot is not None:
                return slot
        earlier = {d: log for d, log in (history or {}).items() if d < key}
        return cls.next_slot(earlier, program)

    @classmethod
    def next_in_rotation(
        cls, history: Mapping[str, dict], program: ProgramConfig
    ) -> WorkoutDefinition:
        return program.schedule[cls.next_slot(history, program)]
