from __future__ import annotations

import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import footiq.db as db


class DBIsolatedTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self._old_db = db.DB_PATH
        db.DB_PATH = Path(self._tmp.name) / "test.sqlite3"
        db.init_db()

    def tearDown(self) -> None:
        db.DB_PATH = self._old_db
        self._tmp.cleanup()


class PuzzleStorageTests(DBIsolatedTestCase):
    def test_duplicate_date_rejected_without_replace(self) -> None:
        db.upsert_puzzle({"game_mode": "the_grid", "puzzle_date": "2025-04-01", "status": "live", "content": {"a": 1}})
        with self.assertRaises(db.DuplicatePuzzleError):
            db.upsert_puzzle({"game_mode": "the_grid", "puzzle_date": "2025-04-01", "content": {}}, replace=False)

    def test_replace_keeps_id(self) -> None:
        first = db.upsert_puzzle({"game_mode": "the_grid", "puzzle_date": "2025-04-01", "status": "draft", "content": {"a": 1}})
        second = db.upsert_puzzle({"game_mode": "the_grid", "puzzle_date": "2025-04-01", "status": "live", "content": {"a": 2}})
        self.assertEqual(first["id"], second["id"])
        self.assertEqual(second["content"], {"a": 2})

    def test_live_only_lookup(self) -> None:
        db.upsert_puzzle({"game_mode": "the_thread", "puzzle_date": "2025-04-01", "status": "draft", "content": {}})
        self.assertIsNone(db.get_puzzle_for_date("the_thread", "2025-04-01"))
        self.assertIsNotNone(db.get_puzzle_for_date("the_thread", "2025-04-01", live_only=False))
        with self.assertRaises(db.PuzzleNotFoundError):
            db.get_puzzle("missing")


class AttemptTests(DBIsolatedTestCase):
    def test_attempt_completes_once_and_adds_total_iq(self) -> None:
        puzzle = db.upsert_puzzle({"game_mode": "topical_quiz", "puzzle_date": "2025-04-01", "status": "live", "content": {}})
        attempt = db.start_attempt(puzzle["id"], {"answers": []})
        self.assertTrue(db.complete_attempt(attempt["id"], 8, "8/10", {"correct_count": 4}))
        self.assertFalse(db.complete_attempt(attempt["id"], 10, "10/10", {"correct_count": 5}))
        self.assertEqual(db.get_total_iq(), 8)
        saved = db.get_attempt(attempt["id"])
        self.assertTrue(saved["completed"])
        self.assertEqual(saved["metadata"], {"correct_count": 4})

    def test_progress_not_written_after_completion(self) -> None:
        puzzle = db.upsert_puzzle({"game_mode": "the_grid", "puzzle_date": "2025-04-01", "status": "live", "content": {}})
        attempt = db.start_attempt(puzzle["id"])
        db.save_attempt_progress(attempt["id"], {"cells_filled": 2})
        db.complete_attempt(attempt["id"], 0, "0/100", {"cells_filled": 2, "gave_up": True})
        db.save_attempt_progress(attempt["id"], {"cells_filled": 7})
        self.assertEqual(db.get_attempt(attempt["id"])["metadata"]["cells_filled"], 2)
        self.assertEqual(db.get_total_iq(), 0)

    def test_streak_freeze_once_per_day(self) -> None:
        self.assertEqual(db.get_available_freezes(), 1)
        self.assertTrue(db.use_streak_freeze("2025-04-02"))
        self.assertFalse(db.use_streak_freeze("2025-04-02"))
        self.assertEqual(db.list_streak_freezes(), ["2025-04-02"])
        self.assertEqual(db.get_available_freezes(), 0)

    def test_no_freeze_spent_without_inventory(self) -> None:
        db.use_streak_freeze("2025-04-02")
        with self.assertRaises(db.NoStreakFreezesError):
            db.use_streak_freeze("2025-04-03")
        self.assertEqual(db.list_streak_freezes(), ["2025-04-02"])

    def test_milestone_awards_are_capped(self) -> None:
        self.assertTrue(db.award_milestone_freeze(7, 3))
        self.assertFalse(db.award_milestone_freeze(7, 3))
        self.assertTrue(db.award_milestone_freeze(14, 3))
        self.assertFalse(db.award_milestone_freeze(21, 3))
        self.assertFalse(db.award_milestone_freeze(28, 3))
        self.assertEqual(db.get_available_freezes(), 3)
        self.assertEqual(db.get_settings()["freeze_last_milestone"], 28)


class GridRarityTests(DBIsolatedTestCase):
    def test_first_pick_is_fully_rare(self) -> None:
        rarity = db.get_grid_cell_rarity("p1", 0, "Q615")
        self.assertEqual(rarity, {"rarity_pct": 100.0, "selection_count": 1, "total_selections": 1, "rank": 1})

    def test_rarity_from_selection_counts(self) -> None:
        for player in ("Q615", "Q615", "Q615", "Q483"):
            db.record_grid_selection("p1", 0, player, player)
        popular = db.get_grid_cell_rarity("p1", 0, "Q615")
        self.assertEqual((popular["rarity_pct"], popular["rank"]), (75.0, 1))
        rare = db.get_grid_cell_rarity("p1", 0, "Q483")
        self.assertEqual((rare["rarity_pct"], rare["rank"]), (25.0, 2))
        unseen = db.get_grid_cell_rarity("p1", 0, "Q999")
        self.assertEqual(unseen["rarity_pct"], 20.0)
        self.assertIsNone(unseen["rank"])

    def test_cell_index_range(self) -> None:
        with self.assertRaises(ValueError):
            db.record_grid_selection("p1", 9, "Q615", "Lionel Messi")

    def test_summary_keeps_order(self) -> None:
        db.record_grid_selection("p1", 4, "Q483", "Thierry Henry")
        summary = db.get_grid_summary_rarity("p1", [{"cell_index": 4, "player_id": "Q483"}, {"cell_index": 0, "player_id": "Q1"}])
        self.assertEqual([s["cell_index"] for s in summary], [4, 0])
        self.assertEqual(summary[0]["rarity_pct"], 100.0)


class PlayerLookupTests(DBIsolatedTestCase):
    def setUp(self) -> None:
        super().setUp()
        db.upsert_club({"id": "C1", "name": "Paris Saint-Germain"})
        db.upsert_club({"id": "C2", "name": "Orphan FC"})
        db.upsert_player({"id": "P1", "name": "Kylian Mbappé", "scout_rank": 90, "nationality_code": "FR", "stats_cache": {"world_cup_titles": 1}})
        db.add_appearance("P1", "C1", 2017, 2024)

    def test_search_is_accent_insensitive(self) -> None:
        self.assertEqual([p["id"] for p in db.search_players("mbappe")], ["P1"])
        self.assertEqual(db.search_players("m"), [])

    def test_played_for_matches_partial_club_name(self) -> None:
        self.assertTrue(db.player_played_for("P1", "Saint-Germain"))
        self.assertFalse(db.player_played_for("P1", "Monaco"))

    def test_player_fields(self) -> None:
        self.assertEqual(db.get_player_nationality("P1"), "FR")
        self.assertEqual(db.get_player_stats_cache("P1"), {"world_cup_titles": 1})
        self.assertEqual(db.get_player_stats_cache("nobody"), {})

    def test_orphan_clubs_pruned(self) -> None:
        deleted, remaining = db.delete_orphan_clubs()
        self.assertEqual(deleted, ["Orphan FC"])
        self.assertEqual(remaining, 1)

    def test_api_football_ids(self) -> None:
        self.assertEqual([p["id"] for p in db.list_players_for_mapping(10)], ["P1"])
        db.set_player_api_football_id("P1", 278)
        self.assertEqual(db.list_players_for_mapping(10), [])
        db.set_club_api_football_id("C1", 85)
        self.assertEqual(db.get_club_api_map(), {"C1": 85})

    def test_appearance_without_start_year_is_not_duplicated(self) -> None:
        db.add_appearance("P1", "C2")
        db.add_appearance("P1", "C2", end_year=2016)
        rows = [a for a in db.get_player_appearances("P1") if a["club_id"] == "C2"]
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["end_year"], 2016)


class ClockTests(DBIsolatedTestCase):
    def test_get_app_today_falls_back_when_zoneinfo_unavailable(self) -> None:
        with patch("footiq.db.ZoneInfo", side_effect=db.ZoneInfoNotFoundError("missing")):
            today = db.get_app_today()
        self.assertRegex(today, r"^\d{4}-\d{2}-\d{2}$")

    def test_testing_mode_advances_simulated_day(self) -> None:
        db.update_settings("Tester", "UTC", True, "", "")
        start = db.get_app_today()
        advanced = db.testing_advance_day(2)
        self.assertEqual(db.get_app_today(), advanced)
        self.assertNotEqual(start, advanced)

    def test_simulated_day_starts_at_local_date_of_saved_timezone(self) -> None:
        with patch("footiq.db._local_now", return_value=datetime(2026, 3, 1, 0, 30)) as local_now:
            db.update_settings("Tester", "Pacific/Auckland", True, "", "")
        local_now.assert_called_once_with("Pacific/Auckland")
        self.assertEqual(db.get_app_today(), "2026-03-01")


class SaveDataTests(DBIsolatedTestCase):
    def test_export_import_restores_rows(self) -> None:
        db.upsert_puzzle({"game_mode": "the_grid", "puzzle_date": "2025-04-01", "status": "live", "content": {"x": 1}})
        exported = db.export_save_data()
        db.upsert_puzzle({"game_mode": "the_grid", "puzzle_date": "2025-04-02", "status": "live", "content": {}})
        db.import_save_data(exported)
        self.assertEqual([p["puzzle_date"] for p in db.list_puzzles("the_grid")], ["2025-04-01"])

    def test_export_leaves_out_api_key_and_import_keeps_it(self) -> None:
        db.update_settings("Gaffer", "UTC", False, "", "", api_football_key="secret")
        exported = db.export_save_data()
        self.assertNotIn("api_football_key", exported["settings"][0])
        self.assertEqual(exported["settings"][0]["display_name"], "Gaffer")

        exported["settings"][0]["api_football_key"] = "from-file"
        db.import_save_data(exported)
        self.assertEqual(db.get_settings()["api_football_key"], "secret")


if __name__ == "__main__":
    unittest.main()
