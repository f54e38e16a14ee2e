import argparse
import datetime
import json
import logging
import shutil
from typing import Optional

from db import (
    CoachLogRepository,
    RecoveryLogRepository,
    SettingsRepository,
    WorkoutLogRepository,
)
from program import ProgramConfig, program_from_settings
from log_schema import date_key
from session_service import LogSession
from stats_service import StatisticsService
from recommendation_service import RecommendationService
from coach_service import CoachService, CoachError
from algorithms.workout_selector import WorkoutSelector
from migrate import migrate

logger = logging.getLogger(__name__)

DEMO_START_WEIGHTS = {
    "Barbell Bench Press": 60.0,
    "Back Squat": 80.0,
    "Conventional Deadlift": 100.0,
    "Romanian Deadlift": 70.0,
    "Leg Press": 120.0,
    "Weighted Pull Up": 5.0,
}


def _program(settings: SettingsRepository) -> ProgramConfig:
    return program_from_settings(settings)


def _user(settings: SettingsRepository, user: Optional[str]) -> str:
    user_id = user or settings.get_text("user_id", "")
    if not user_id:
        raise SystemExit("No user configured; pass --user or set user_id in settings")
    return user_id


def show_due(db_path: str, yaml_path: str, user: Optional[str], date: str) -> dict:
    settings = SettingsRepository(db_path, yaml_path)
    program = _program(settings)
    history = WorkoutLogRepository(db_path, _user(settings, user)).fetch_snapshot()
    slot = WorkoutSelector.due_slot(date, history, program)
    workout = WorkoutSelector.due_workout(date, history, program)
    return {
        "date": date_key(date),
        "slot": slot,
        "workout": workout.name if workout else None,
        "next_in_rotation": WorkoutSelector.next_in_rotation(history, program).name,
    }


def show_kpis(db_path: str, yaml_path: str, user: Optional[str]) -> dict:
    settings = SettingsRepository(db_path, yaml_path)
    history = WorkoutLogRepository(db_path, _user(settings, user)).fetch_snapshot()
    return StatisticsService(_program(settings)).compute_kpis(history)


def show_targets(db_path: str, yaml_path: str, user: Optional[str], date: str) -> dict:
    settings = SettingsRepository(db_path, yaml_path)
    program = _program(settings)
    history = WorkoutLogRepository(db_path, _user(settings, user)).fetch_snapshot()
    slot = WorkoutSelector.slot_for_day(date, history, program)
    if slot is None:
        return {}
    return RecommendationService(program).targets_for(
        slot, history, before_date=date_key(date)
    )


def log_set(
    db_path: str,
    yaml_path: str,
    user: Optional[str],
    date: str,
    exercise_index: int,
    set_index: int,
    weight: Optional[float],
    reps: Optional[int],
    done: Optional[bool],
) -> str:
    settings = SettingsRepository(db_path, yaml_path)
    user_id = _user(settings, user)
    session = LogSession(
        WorkoutLogRepository(db_path, user_id),
        RecoveryLogRepository(db_path, user_id),
        _program(settings),
    )
    session.open(date)
    return session.update_set(exercise_index, set_index, weight, reps, done)


def log_recovery(
    db_path: str, yaml_path: str, user: Optional[str], date: str, fields: dict
) -> dict:
    settings = SettingsRepository(db_path, yaml_path)
    repo = RecoveryLogRepository(db_path, _user(settings, user))
    return repo.upsert(date, {k: v for k, v in fields.items() if v is not None})


def export_logs(db_path: str, yaml_path: str, user: Optional[str], out_path: str) -> None:
    settings = SettingsRepository(db_path, yaml_path)
    user_id = _user(settings, user)
    data = {
        "user_id": user_id,
        "workout_logs": WorkoutLogRepository(db_path, user_id).fetch_snapshot(),
        "recovery_logs": RecoveryLogRepository(db_path, user_id).fetch_snapshot(),
    }
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def demo_data(
    db_path: str,
    yaml_path: str,
    user: Optional[str] = None,
    weeks: int = 3,
    today: Optional[datetime.date] = None,
) -> int:
    """Populate several weeks of completed sessions if no logs exist.

    Returns the number of sessions written.
    """
    settings = SettingsRepository(db_path, yaml_path)
    user_id = user or settings.get_text("user_id", "") or "demo"
    if not settings.get_text("user_id", ""):
        settings.set_text("user_id", user_id)
    program = _program(settings)
    workouts = WorkoutLogRepository(db_path, user_id)
    if workouts.fetch_dates():
        print("Database already contains workout logs")
        return 0
    recovery = RecoveryLogRepository(db_path, user_id)
    session = LogSession(workouts, recovery, program)
    end = today or datetime.date.today()
    day = end - datetime.timedelta(days=7 * weeks)
    written = 0
    while day < end:
        state = session.open(day)
        if state != LogSession.NO_WORKOUT:
            targets = session.targets(workouts.fetch_snapshot())
            for ex_idx, ex in enumerate(session.log["exercises"]):
                planned = targets.get(ex["id"]) or []
                for set_idx in range(len(ex["sets_data"])):
                    target = planned[set_idx] if set_idx < len(planned) else None
                    if target:
                        weight = target["target_weight"]
                        reps = target["target_reps"]
                    else:
                        weight = DEMO_START_WEIGHTS.get(ex["name"], 20.0)
                        reps = int(ex["rep_range"].split("-")[0])
                    session.update_set(ex_idx, set_idx, weight, reps, True)
            written += 1
        session.update_recovery(sleep_hours=7.5, readiness=7)
        day += datetime.timedelta(days=1)
    print(f"Inserted {written} demo sessions")
    return written


def coach_advice(db_path: str, yaml_path: str, user: Optional[str], date: str) -> str:
    """Return coaching advice, or the coach's error message when it fails."""
    settings = SettingsRepository(db_path, yaml_path)
    user_id = _user(settings, user)
    session = LogSession(
        WorkoutLogRepository(db_path, user_id),
        RecoveryLogRepository(db_path, user_id),
        _program(settings),
    )
    session.open(date)
    kpis = StatisticsService(session.program).compute_kpis(
        session.workouts.fetch_snapshot()
    )
    coach = CoachService(settings, CoachLogRepository(db_path))
    try:
        return coach.advice(kpis, session.log, session.recovery)
    except CoachError as e:
        logger.warning("advice unavailable: %s", e)
        return str(e)


def main() -> None:
    parser = argparse.ArgumentParser(description="Training log utilities")
    parser.add_argument("--db", default="liftlog.db")
    parser.add_argument("--yaml", default="settings.yaml")
    parser.add_argument("--user", default=None)
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)

    today = datetime.date.today().isoformat()

    due = sub.add_parser("due")
    due.add_argument("--date", default=today)

    sub.add_parser("kpis")

    tgt = sub.add_parser("targets")
    tgt.add_argument("--date", default=today)

    ls = sub.add_parser("log-set")
    ls.add_argument("--date", default=today)
    ls.add_argument("--exercise", type=int, required=True)
    ls.add_argument("--set", dest="set_index", type=int, required=True)
    ls.add_argument("--weight", type=float)
    ls.add_argument("--reps", type=int)
    ls.add_argument("--done", action=argparse.BooleanOptionalAction, default=None)

    rec = sub.add_parser("recovery")
    rec.add_argument("--date", default=today)
    rec.add_argument("--sleep", type=float)
    rec.add_argument("--hrv", type=float)
    rec.add_argument("--readiness", type=int)
    rec.add_argument("--soreness", type=int)
    rec.add_argument("--cardio", type=float)
    rec.add_argument("--notes")

    exp = sub.add_parser("export")
    exp.add_argument("--out", default="liftlog_export.json")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--weeks", type=int, default=3)

    sub.add_parser("migrate")

    adv = sub.add_parser("advice")
    adv.add_argument("--date", default=today)

    args = parser.parse_args()

    level = args.log_level
    if level is None and args.cmd not in ("backup", "restore"):
        level = SettingsRepository(args.db, args.yaml).get_text("log_level", "INFO")
    logging.basicConfig(level=getattr(logging, str(level or "INFO").upper(), logging.INFO))

    if args.cmd == "due":
        print(json.dumps(show_due(args.db, args.yaml, args.user, args.date), indent=2))
    elif args.cmd == "kpis":
        print(json.dumps(show_kpis(args.db, args.yaml, args.user), indent=2))
    elif args.cmd == "targets":
        print(json.dumps(show_targets(args.db, args.yaml, args.user, args.date), indent=2))
    elif args.cmd == "log-set":
        state = log_set(
            args.db,
            args.yaml,
            args.user,
            args.date,
            args.exercise,
            args.set_index,
            args.weight,
            args.reps,
            args.done,
        )
        print(f"Workout is {state}")
    elif args.cmd == "recovery":
        fields = {
            "sleep_hours": args.sleep,
            "hrv": args.hrv,
            "readiness": args.readiness,
            "soreness": args.soreness,
            "cardio_duration": args.cardio,
            "cardio_notes": args.notes,
        }
        print(json.dumps(log_recovery(args.db, args.yaml, args.user, args.date, fields), indent=2))
    elif args.cmd == "export":
        export_logs(args.db, args.yaml, args.user, args.out)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "demo":
        demo_data(args.db, args.yaml, args.user, args.weeks)
    elif args.cmd == "migrate":
        program = _program(SettingsRepository(args.db, args.yaml))
        print(f"{migrate(args.db, program)} workout logs updated")
    elif args.cmd == "advice":
        print(coach_advice(args.db, args.yaml, args.user, args.date))


if __name__ == "__main__":
    main()
