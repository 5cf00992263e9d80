from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import footiq.db as db
from footiq import stats


class NormalizedScoreTests(unittest.TestCase):
    def test_each_mode_maps_to_percent(self) -> None:
        self.assertEqual(stats.normalize_score("the_thread", {"guess_count": 2, "won": True, "hints_revealed": 1}), 60)
        self.assertEqual(stats.normalize_score("tic_tac_toe", {"result": "draw"}), 50)
        self.assertEqual(stats.normalize_score("topical_quiz", {"correct_count": 3}), 60)
        self.assertEqual(stats.normalize_score("the_grid", {"cells_filled": 9}), 100)
        self.assertEqual(stats.normalize_score("the_grid", None), 0)
        self.assertEqual(stats.normalize_score("the_thread", {"won": "yes", "guess_count": 1}), 0)

    def test_perfect_scores(self) -> None:
        self.assertTrue(stats.is_perfect_score("the_thread", {"won": True, "hints_revealed": 0}))
        self.assertFalse(stats.is_perfect_score("the_thread", {"won": True, "hints_revealed": 1}))
        self.assertTrue(stats.is_perfect_score("topical_quiz", {"correct_count": 5}))

    def test_global_iq_redistributes_unplayed_weight(self) -> None:
        quiz = stats.calculate_proficiency("topical_quiz", [{"metadata": {"correct_count": 4}}, {"metadata": {"correct_count": 2}}])
        self.assertEqual(quiz["percentage"], 60)
        self.assertEqual(quiz["display_name"], "Current Affairs")
        empty = stats.calculate_proficiency("the_grid", [])
        self.assertEqual(stats.calculate_global_iq([quiz, empty]), 60)

        ttt = stats.calculate_proficiency("tic_tac_toe", [{"metadata": {"result": "win"}}])
        # (60 * 0.09 + 100 * 0.10) / 0.19
        self.assertEqual(stats.calculate_global_iq([quiz, ttt]), 81)
        self.assertEqual(stats.calculate_global_iq([empty]), 0)


class TierTests(unittest.TestCase):
    def test_tier_boundaries(self) -> None:
        self.assertEqual(stats.get_tier_for_points(0)["name"], "Trialist")
        self.assertEqual(stats.get_tier_for_points(25)["tier"], 2)
        self.assertEqual(stats.get_tier_for_points(25000)["name"], "GOAT")
        self.assertIsNone(stats.get_next_tier(stats.get_tier_for_points(25000)))

    def test_progress_and_formatting(self) -> None:
        self.assertEqual(stats.get_points_to_next_tier(80), 20)
        self.assertEqual(stats.get_progress_to_next_tier(20000), 100)
        self.assertEqual(stats.format_total_iq(1234), "1,234 IQ")


class StreakTests(unittest.TestCase):
    def test_current_streak_alive_until_yesterday(self) -> None:
        dates = ["2025-01-01", "2025-01-02", "2025-01-03"]
        self.assertEqual(stats.calculate_streak(dates, today="2025-01-04"), {"current": 3, "longest": 3})
        self.assertEqual(stats.calculate_streak(dates, today="2025-01-05"), {"current": 0, "longest": 3})

    def test_duplicate_days_count_once(self) -> None:
        self.assertEqual(stats.calculate_streak(["2025-01-01", "2025-01-01"], today="2025-01-01")["current"], 1)

    def test_freeze_bridges_one_missed_day(self) -> None:
        dates = ["2025-01-01", "2025-01-03"]
        self.assertEqual(stats.calculate_streak(dates, today="2025-01-03")["current"], 1)
        self.assertEqual(stats.calculate_streak(dates, ["2025-01-02"], today="2025-01-03")["current"], 2)

    def test_frozen_days_keep_current_streak_alive(self) -> None:
        dates = ["2025-01-01", "2025-01-02"]
        freezes = ["2025-01-03", "2025-01-04"]
        self.assertEqual(stats.calculate_streak(dates, freezes, today="2025-01-05"), {"current": 2, "longest": 2})
        self.assertEqual(stats.calculate_streak(dates + ["2025-01-05"], freezes, today="2025-01-05")["current"], 3)
        self.assertEqual(stats.calculate_streak(dates, freezes, today="2025-01-06")["current"], 0)

    def test_no_dates(self) -> None:
        self.assertEqual(stats.calculate_streak([]), {"current": 0, "longest": 0})


class DistributionTests(unittest.TestCase):
    def test_buckets_and_percentile(self) -> None:
        buckets = stats.calculate_distribution_buckets([{"score": 45, "count": 1}, {"score": 100, "count": 3}], 100, 20)
        self.assertEqual([b["score"] for b in buckets], [0, 20, 40, 60, 80, 100])
        self.assertEqual(buckets[2]["count"], 1)
        self.assertEqual(buckets[-1]["percentage"], 75)
        self.assertEqual(stats.get_percentile_rank(100, buckets), 25)
        self.assertEqual(stats.get_percentile_rank(50, []), 0)

    def test_quiz_uses_wider_buckets(self) -> None:
        self.assertEqual(stats.bucket_size_for_mode("topical_quiz"), 20)
        self.assertEqual(stats.bucket_size_for_mode("the_grid"), 10)


class UserStatsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.old = db.DB_PATH
        db.DB_PATH = Path(self.tmp.name) / "stats.sqlite3"
        db.init_db()

    def tearDown(self) -> None:
        db.DB_PATH = self.old
        self.tmp.cleanup()

    def _complete(self, mode: str, puzzle_date: str, points: int, metadata: dict) -> None:
        puzzle = db.upsert_puzzle({"game_mode": mode, "puzzle_date": puzzle_date, "status": "live", "content": {}})
        attempt = db.start_attempt(puzzle["id"])
        db.complete_attempt(attempt["id"], points, None, metadata)

    def test_profile_from_completed_attempts(self) -> None:
        self._complete("topical_quiz", "2025-01-01", 8, {"correct_count": 4})
        self._complete("topical_quiz", "2025-01-02", 10, {"correct_count": 5})
        self._complete("tic_tac_toe", "2025-01-02", 5, {"result": "draw"})

        profile = stats.get_user_stats(today="2025-01-02")
        self.assertEqual(profile["total_puzzles"], 3)
        self.assertEqual(profile["games_played_today"], 2)
        self.assertEqual(profile["current_streak"], 2)
        self.assertEqual(profile["last_played_date"], "2025-01-02")
        self.assertEqual(profile["total_iq"], 23)
        self.assertEqual(profile["total_iq_display"], "23 IQ")
        self.assertEqual(profile["tier"]["name"], "Trialist")

        distribution = stats.get_mode_distribution("topical_quiz", user_score=100)
        self.assertEqual(distribution["total"], 2)
        self.assertEqual(distribution["percentile"], 50)
        self.assertEqual(distribution["scores"], [{"score": 80, "count": 1, "percentage": 50}, {"score": 100, "count": 1, "percentage": 50}])

    def test_in_progress_attempts_do_not_count(self) -> None:
        puzzle = db.upsert_puzzle({"game_mode": "the_grid", "puzzle_date": "2025-01-01", "status": "live", "content": {}})
        db.start_attempt(puzzle["id"], {"cells_filled": 3})
        self.assertEqual(stats.get_user_stats(today="2025-01-01")["total_puzzles"], 0)

    def test_seven_day_streak_earns_a_freeze_once(self) -> None:
        for day in range(1, 8):
            self._complete("topical_quiz", f"2025-01-0{day}", 2, {"correct_count": 1})
        profile = stats.get_user_stats(today="2025-01-07")
        self.assertEqual(profile["current_streak"], 7)
        self.assertEqual(profile["available_freezes"], 2)
        self.assertEqual(stats.get_user_stats(today="2025-01-07")["available_freezes"], 2)

    def test_missed_yesterday_is_bridged_automatically(self) -> None:
        self._complete("topical_quiz", "2025-01-01", 2, {"correct_count": 1})
        self._complete("topical_quiz", "2025-01-02", 2, {"correct_count": 1})

        profile = stats.get_user_stats(today="2025-01-04")
        self.assertEqual(db.list_streak_freezes(), ["2025-01-03"])
        self.assertEqual(profile["current_streak"], 2)
        self.assertEqual(profile["available_freezes"], 0)
        self.assertEqual(db.recent_events(5)[0]["kind"], "streak_freeze")

    def test_no_bridge_across_two_missed_days(self) -> None:
        self._complete("topical_quiz", "2025-01-02", 2, {"correct_count": 1})
        profile = stats.get_user_stats(today="2025-01-05")
        self.assertEqual(db.list_streak_freezes(), [])
        self.assertEqual((profile["current_streak"], profile["available_freezes"]), (0, 1))

    def test_no_bridge_without_freezes_left(self) -> None:
        db.use_streak_freeze("2024-12-01")
        self._complete("topical_quiz", "2025-01-02", 2, {"correct_count": 1})
        profile = stats.get_user_stats(today="2025-01-04")
        self.assertEqual(db.list_streak_freezes(), ["2024-12-01"])
        self.assertEqual(profile["current_streak"], 0)


if __name__ == "__main__":
    unittest.main()
