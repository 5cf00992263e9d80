from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import footiq.db as db
from footiq.jobs.schedule_runner import main


def context(local_date: str, hour: int, minute: int) -> dict:
    return {"local_date": local_date, "local_hour": hour, "local_minute": minute, "timezone": "Europe/London"}


@patch("footiq.jobs.schedule_runner.init_db")
@patch("footiq.jobs.schedule_runner.map_players")
@patch("footiq.jobs.schedule_runner.send_evening")
@patch("footiq.jobs.schedule_runner.send_morning")
@patch("footiq.jobs.schedule_runner.seed_from_pack")
@patch("footiq.jobs.schedule_runner.autofill_grids")
@patch("footiq.jobs.schedule_runner.get_schedule_context")
class ScheduleRunnerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.old_db = db.DB_PATH
        db.DB_PATH = Path(self.tmp.name) / "runner.sqlite3"
        db.init_db()

    def tearDown(self) -> None:
        db.DB_PATH = self.old_db
        self.tmp.cleanup()

    def test_midnight_window_fills_grids_then_seeds(self, get_schedule_context, autofill_grids, seed_from_pack, send_morning, send_evening, map_players, init_db) -> None:
        get_schedule_context.return_value = context("2026-02-21", 0, 5)

        main()

        init_db.assert_called_once()
        autofill_grids.assert_called_once_with("2026-02-21")
        seed_from_pack.assert_called_once_with("2026-02-21")
        send_morning.assert_not_called()
        send_evening.assert_not_called()
        map_players.assert_not_called()

    def test_reminder_windows(self, get_schedule_context, autofill_grids, seed_from_pack, send_morning, send_evening, map_players, init_db) -> None:
        get_schedule_context.return_value = context("2026-02-21", 8, 0)
        main()
        send_morning.assert_called_once_with("2026-02-21")

        get_schedule_context.return_value = context("2026-02-21", 19, 14)
        main()
        send_evening.assert_called_once_with("2026-02-21")
        autofill_grids.assert_not_called()

    def test_outside_windows_does_nothing(self, get_schedule_context, autofill_grids, seed_from_pack, send_morning, send_evening, map_players, init_db) -> None:
        get_schedule_context.return_value = context("2026-02-21", 8, 20)
        main()
        for job in (autofill_grids, seed_from_pack, send_morning, send_evening, map_players):
            job.assert_not_called()

    @patch("footiq.jobs.schedule_runner.get_settings", return_value={"api_football_key": "secret"})
    def test_weekly_mapping_runs_on_monday_with_key(self, get_settings, get_schedule_context, autofill_grids, seed_from_pack, send_morning, send_evening, map_players, init_db) -> None:
        get_schedule_context.return_value = context("2026-02-23", 3, 10)
        main()
        map_players.assert_called_once_with()

        map_players.reset_mock()
        get_schedule_context.return_value = context("2026-02-24", 3, 10)
        main()
        map_players.assert_not_called()

    @patch("footiq.jobs.schedule_runner.get_settings", return_value={"api_football_key": "secret"})
    def test_weekly_mapping_runs_once_per_window(self, get_settings, get_schedule_context, autofill_grids, seed_from_pack, send_morning, send_evening, map_players, init_db) -> None:
        for minute in (0, 5, 10):
            get_schedule_context.return_value = context("2026-02-23", 3, minute)
            main()
        self.assertEqual(map_players.call_count, 1)
        self.assertTrue(db.was_reminder_sent("map_external_ids", "2026-02-23"))

    @patch("footiq.jobs.schedule_runner.get_settings", return_value={"api_football_key": ""})
    def test_weekly_mapping_needs_key(self, get_settings, get_schedule_context, autofill_grids, seed_from_pack, send_morning, send_evening, map_players, init_db) -> None:
        get_schedule_context.return_value = context("2026-02-23", 3, 10)
        with patch.dict("os.environ", {"API_FOOTBALL_KEY": ""}):
            main()
        map_players.assert_not_called()


if __name__ == "__main__":
    unittest.main()
