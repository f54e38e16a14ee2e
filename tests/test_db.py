import os
import sys
import json
import sqlite3
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    CoachLogRepository,
    RecoveryLogRepository,
    SettingsRepository,
    WorkoutLogRepository,
    deep_merge,
)
from log_schema import build_template
from program import DEFAULT_PROGRAM


class DeepMergeTestCase(unittest.TestCase):
    def test_nested_merge(self) -> None:
        base = {"a": 1, "b": {"c": 2, "d": 3}, "l": [1, 2]}
        merged = deep_merge(base, {"b": {"c": 5}, "l": [9], "e": None})
        self.assertEqual(merged, {"a": 1, "b": {"c": 5, "d": 3}, "l": [9], "e": None})
        self.assertEqual(base["b"]["c"], 2)


class LogRepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_repos.db"
        self.yaml_path = "test_repos.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.workouts = WorkoutLogRepository(self.db_path, "athlete")
        self.recovery = RecoveryLogRepository(self.db_path, "athlete")

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_requires_user(self) -> None:
        with self.assertRaises(ValueError):
            WorkoutLogRepository(self.db_path, "")

    def test_upsert_merges(self) -> None:
        self.recovery.upsert("2024-01-01", {"sleep_hours": 7.5, "readiness": 8})
        self.recovery.upsert("2024-01-01", {"hrv": 60})
        self.assertEqual(
            self.recovery.fetch("2024-01-01"),
            {"sleep_hours": 7.5, "readiness": 8, "hrv": 60},
        )
        with self.assertRaises(ValueError):
            self.recovery.upsert("2024-01-01", {"soreness": 20})
        self.assertNotIn("soreness", self.recovery.fetch("2024-01-01"))

    def test_snapshot_rederives_completion(self) -> None:
        log = build_template(DEFAULT_PROGRAM.schedule[1], 1)
        log["is_complete"] = True
        self.workouts.upsert("2024-01-01", log)
        conn = sqlite3.connect(self.db_path)
        raw = conn.execute("SELECT data FROM workout_logs").fetchone()[0]
        conn.close()
        self.assertFalse(json.loads(raw)["is_complete"])
        snapshot = self.workouts.fetch_snapshot()
        self.assertEqual(list(snapshot), ["2024-01-01"])
        self.assertFalse(snapshot["2024-01-01"]["is_complete"])
        self.assertIsNone(self.workouts.fetch("2024-01-02"))

    def test_partial_write_keeps_other_fields(self) -> None:
        log = build_template(DEFAULT_PROGRAM.schedule[1], 1)
        self.workouts.upsert("2024-01-01", log)
        self.workouts.upsert("2024-01-01", {"name": "Upper Body A", "notes": "felt good"})
        stored = self.workouts.fetch("2024-01-01")
        self.assertEqual(stored["notes"], "felt good")
        self.assertEqual(len(stored["exercises"]), len(log["exercises"]))

    def test_users_are_isolated(self) -> None:
        other = RecoveryLogRepository(self.db_path, "someone-else")
        self.recovery.upsert("2024-01-01", {"sleep_hours": 7})
        self.assertEqual(other.fetch_snapshot(), {})
        self.assertEqual(self.recovery.fetch_dates(), ["2024-01-01"])

    def test_subscription(self) -> None:
        received = []
        unsubscribe = self.recovery.subscribe(received.append)
        self.assertEqual(received, [{}])
        # a second repository on the same collection also notifies
        RecoveryLogRepository(self.db_path, "athlete").upsert("2024-01-02", {"hrv": 40})
        self.assertEqual(received[-1], {"2024-01-02": {"hrv": 40}})
        unsubscribe()
        self.recovery.upsert("2024-01-03", {"hrv": 41})
        self.assertEqual(len(received), 2)

    def test_failing_subscriber_does_not_break_writes(self) -> None:
        def broken(snapshot):
            if snapshot:
                raise RuntimeError("boom")

        unsubscribe = self.recovery.subscribe(broken)
        with self.assertLogs("db", level="ERROR"):
            self.recovery.upsert("2024-01-02", {"hrv": 40})
        unsubscribe()
        self.assertEqual(self.recovery.fetch("2024-01-02"), {"hrv": 40})

    def test_delete_all(self) -> None:
        self.recovery.upsert("2024-01-02", {"hrv": 40})
        self.recovery.delete_all()
        self.assertEqual(self.recovery.fetch_snapshot(), {})

    def test_coach_log(self) -> None:
        repo = CoachLogRepository(self.db_path)
        repo.log("prompt", "keep going", True)
        repo.log("prompt", None, False)
        rows = repo.fetch_recent()
        self.assertEqual(len(rows), 2)
        self.assertFalse(rows[0]["success"])
        self.assertEqual(rows[1]["response"], "keep going")


class SettingsRepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_settings.db"
        self.yaml_path = "test_settings.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_defaults_and_yaml_sync(self) -> None:
        settings = SettingsRepository(self.db_path, self.yaml_path)
        self.assertEqual(settings.get_float("load_step", 0.0), 2.5)
        self.assertIsNone(settings.get_optional_float("coach_timeout"))
        self.assertTrue(os.path.exists(self.yaml_path))
        settings.set_text("user_id", "42")
        reloaded = SettingsRepository(self.db_path, self.yaml_path)
        self.assertEqual(reloaded.get_text("user_id", ""), "42")
        self.assertEqual(reloaded.all_settings()["user_id"], "42")

    def test_yaml_edits_are_picked_up(self) -> None:
        settings = SettingsRepository(self.db_path, self.yaml_path)
        data = settings.all_settings()
        data["coach_timeout"] = 12.5
        settings._yaml.save(data)
        self.assertEqual(settings.get_optional_float("coach_timeout"), 12.5)

    def test_update_validates(self) -> None:
        settings = SettingsRepository(self.db_path, self.yaml_path)
        settings.update({"load_step": 5.0, "user_id": "me"})
        self.assertEqual(settings.get_float("load_step", 0.0), 5.0)
        with self.assertRaises(ValueError):
            settings.update({"load_step": -1})
        self.assertEqual(settings.get_float("load_step", 0.0), 5.0)


if __name__ == "__main__":
    unittest.main()
