import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from stats_service import StatisticsService
from program import DEFAULT_PROGRAM
from log_schema import build_template


def log_for(slot: int, weight: float = 50.0, reps: int = 8, done: bool = True) -> dict:
    log = build_template(DEFAULT_PROGRAM.schedule[slot], slot)
    for ex in log["exercises"]:
        for s in ex["sets_data"]:
            s.update({"weight": weight, "reps": reps, "is_done": done})
    return log


def single_set_log(name: str, exercise_id: int, weight: float, reps: int, sets: int = 1) -> dict:
    return {
        "name": name,
        "exercises": [
            {
                "id": exercise_id,
                "name": "Bench",
                "sets": sets,
                "rep_range": "6-8",
                "sets_data": [
                    {"set": 1, "weight": weight, "reps": reps, "is_done": True}
                ],
            }
        ],
    }


class StatisticsServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.stats = StatisticsService(DEFAULT_PROGRAM)

    def test_empty_history(self) -> None:
        for history in (None, {}):
            self.assertEqual(
                self.stats.compute_kpis(history),
                {
                    "total_volume": 0.0,
                    "consistency_score": 0,
                    "overload_ratio": 0,
                    "total_sets_completed": 0,
                    "weekly_volume": [],
                },
            )

    def test_full_session(self) -> None:
        history = {"2024-01-01": log_for(1, 100.0, 8)}
        kpis = self.stats.compute_kpis(history)
        total_sets = sum(ex.sets for ex in DEFAULT_PROGRAM.schedule[1].exercises)
        self.assertEqual(kpis["total_sets_completed"], total_sets)
        self.assertEqual(kpis["total_volume"], total_sets * 800.0)
        self.assertEqual(kpis["consistency_score"], 100)
        # only the first set of each exercise beats the running maximum
        self.assertEqual(
            kpis["overload_ratio"],
            round(100 * len(DEFAULT_PROGRAM.schedule[1].exercises) / total_sets),
        )
        self.assertEqual(
            kpis["weekly_volume"],
            [{"week_start": "2023-12-31", "volume": total_sets * 800}],
        )

    def test_partial_completion(self) -> None:
        log = log_for(2, 60.0, 10, done=False)
        log["exercises"][0]["sets_data"][0]["is_done"] = True
        kpis = self.stats.compute_kpis({"2024-01-02": log})
        planned = sum(ex.sets for ex in DEFAULT_PROGRAM.schedule[2].exercises)
        self.assertEqual(kpis["total_sets_completed"], 1)
        self.assertEqual(kpis["consistency_score"], round(100 / planned))
        self.assertEqual(kpis["total_volume"], 600.0)

    def test_sets_without_load_or_reps_do_not_count(self) -> None:
        log = log_for(1, 0.0, 8)
        kpis = self.stats.compute_kpis({"2024-01-01": log})
        self.assertEqual(kpis["total_sets_completed"], 0)
        self.assertEqual(kpis["consistency_score"], 0)
        self.assertEqual(kpis["overload_ratio"], 0)

    def test_overload_counting_is_order_dependent(self) -> None:
        history = {
            "2024-01-04": single_set_log("Upper Body A", 1, 100.0, 11),
            "2024-01-01": single_set_log("Upper Body A", 1, 100.0, 10),
            "2024-01-02": single_set_log("Upper Body A", 1, 120.0, 10),
            "2024-01-08": single_set_log("Upper Body A", 1, 130.0, 10),
        }
        kpis = self.stats.compute_kpis(history)
        self.assertEqual(kpis["total_sets_completed"], 4)
        self.assertEqual(kpis["overload_ratio"], 75)
        self.assertEqual(kpis["total_volume"], 1000.0 + 1200.0 + 1100.0 + 1300.0)

    def test_consistency_is_capped(self) -> None:
        history = {"2024-01-01": single_set_log("Upper Body A", 1, 100.0, 8, sets=1)}
        log = history["2024-01-01"]
        log["exercises"][0]["sets_data"].append(
            {"set": 2, "weight": 100.0, "reps": 8, "is_done": True}
        )
        log["exercises"][0]["sets_data"].append(
            {"set": 3, "weight": 100.0, "reps": 8, "is_done": True}
        )
        log["exercises"][0]["sets_data"].append(
            {"set": 4, "weight": 100.0, "reps": 8, "is_done": True}
        )
        kpis = self.stats.compute_kpis(history)
        self.assertEqual(kpis["total_sets_completed"], 4)
        self.assertEqual(kpis["consistency_score"], 100)

    def test_unknown_workout_counts_completed_but_not_planned(self) -> None:
        history = {
            "2024-01-01": single_set_log("Upper Body A", 1, 100.0, 8),
            "2024-01-02": single_set_log("Mystery Day", 1, 100.0, 8),
        }
        kpis = self.stats.compute_kpis(history)
        self.assertEqual(kpis["total_sets_completed"], 2)
        self.assertEqual(kpis["total_volume"], 1600.0)
        # 3 sets planned for the bench press, 2 completed overall
        self.assertEqual(kpis["consistency_score"], 67)

    def test_unknown_exercise_ids_plan_nothing(self) -> None:
        history = {"2024-01-01": single_set_log("Upper Body A", 99, 100.0, 8)}
        kpis = self.stats.compute_kpis(history)
        self.assertEqual(kpis["consistency_score"], 0)
        self.assertEqual(kpis["total_sets_completed"], 1)

    def test_weekly_series(self) -> None:
        history = {
            "2024-01-07": single_set_log("Upper Body A", 1, 10.25, 2),
            "2024-01-01": single_set_log("Upper Body A", 1, 100.0, 10),
            "2024-01-02": single_set_log("Upper Body A", 1, 50.0, 10),
        }
        kpis = self.stats.compute_kpis(history)
        self.assertEqual(
            kpis["weekly_volume"],
            [
                {"week_start": "2023-12-31", "volume": 1500},
                {"week_start": "2024-01-07", "volume": 21},
            ],
        )

    def test_idempotent(self) -> None:
        history = {
            "2024-01-01": log_for(1, 80.0, 6),
            "2024-01-02": log_for(2, 100.0, 7),
        }
        first = self.stats.compute_kpis(history)
        first["weekly_volume"].append({"week_start": "x", "volume": 0})
        second = self.stats.compute_kpis(history)
        self.stats.clear_cache()
        third = StatisticsService(DEFAULT_PROGRAM).compute_kpis(history)
        self.assertEqual(second, third)
        self.assertNotIn({"week_start": "x", "volume": 0}, second["weekly_volume"])

    def test_cache_follows_history_changes(self) -> None:
        history = {"2024-01-01": log_for(1, 80.0, 6)}
        before = self.stats.compute_kpis(history)
        history["2024-01-02"] = log_for(2, 100.0, 7)
        after = self.stats.compute_kpis(history)
        self.assertGreater(after["total_volume"], before["total_volume"])

    def test_cache_keeps_only_latest_history(self) -> None:
        history = {}
        for day in range(1, 29):
            history[f"2024-02-{day:02d}"] = log_for(1, 40.0 + day, 6)
            self.stats.compute_kpis(dict(history))
        self.assertEqual(self.stats._cache_key, self.stats._fingerprint(history))
        self.assertEqual(self.stats._cache, self.stats.compute_kpis(history))
        self.stats.clear_cache()
        self.assertIsNone(self.stats._cache)

    def test_exercise_history_and_records(self) -> None:
        history = {
            "2024-01-01": single_set_log("Upper Body A", 1, 100.0, 5),
            "2024-01-08": single_set_log("Upper Body A", 1, 90.0, 8),
        }
        rows = self.stats.exercise_history(history, 1)
        self.assertEqual([r["date"] for r in rows], ["2024-01-01", "2024-01-08"])
        self.assertEqual(rows[0]["volume"], 500.0)
        self.assertAlmostEqual(rows[0]["est_1rm"], round(100 * (1 + 0.0333 * 5), 2))
        records = self.stats.personal_records(history)
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0]["date"], "2024-01-08")
        self.assertEqual(records[0]["volume"], 720.0)
        self.assertEqual(self.stats.exercise_history({}, 1), [])

    def test_recovery_summary(self) -> None:
        recovery = {
            "2024-01-05": {"sleep_hours": 8, "readiness": 7, "cardio_duration": 20},
            "2024-01-06": {"sleep_hours": 6, "hrv": 55, "soreness": 3},
            "2023-12-01": {"sleep_hours": 4},
        }
        summary = self.stats.recovery_summary(
            recovery, days=7, today=datetime.date(2024, 1, 7)
        )
        self.assertEqual(summary["entries"], 2)
        self.assertEqual(summary["avg_sleep_hours"], 7.0)
        self.assertEqual(summary["avg_hrv"], 55.0)
        self.assertEqual(summary["avg_readiness"], 7.0)
        self.assertEqual(summary["avg_soreness"], 3.0)
        self.assertEqual(summary["cardio_minutes"], 20.0)
        empty = self.stats.recovery_summary({}, today=datetime.date(2024, 1, 7))
        self.assertEqual(empty["entries"], 0)
        self.assertEqual(empty["avg_sleep_hours"], 0.0)


if __name__ == "__main__":
    unittest.main()
