from __future__ import annotations

import json
import tempfile
import unittest
import urllib.error
from pathlib import Path
from unittest.mock import MagicMock, patch

import footiq.db as db
from footiq import notifier
from footiq.content import seed_from_pack, seed_reference_data, load_puzzle_pack
from footiq.jobs import grid_autofill, map_external_ids, reminders

DAY = "2025-06-01"

GRID = {
    "xAxis": [{"type": "club", "value": v} for v in ("Barcelona", "Real Madrid", "Paris Saint-Germain")],
    "yAxis": [{"type": "nation", "value": v} for v in ("France", "Argentina", "Brazil")],
}


class DBTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self._old_db = db.DB_PATH
        db.DB_PATH = Path(self._tmp.name) / "jobs.sqlite3"
        db.init_db()

    def tearDown(self) -> None:
        db.DB_PATH = self._old_db
        self._tmp.cleanup()

    def complete(self, game_mode: str, puzzle_date: str) -> None:
        puzzle = db.upsert_puzzle({"game_mode": game_mode, "puzzle_date": puzzle_date, "status": "live", "content": {}})
        attempt = db.start_attempt(puzzle["id"])
        db.complete_attempt(attempt["id"], 5, "5/10", {"correct_count": 3})


class NotifierTests(unittest.TestCase):
    def test_build_notifier_prefers_discord(self) -> None:
        both = {"discord_webhook_url": "https://discord.example/hook", "ntfy_topic_url": "https://ntfy.sh/footiq"}
        self.assertIsInstance(notifier.build_notifier(both), notifier.DiscordNotifier)
        self.assertIsInstance(notifier.build_notifier({"ntfy_topic_url": "https://ntfy.sh/footiq"}), notifier.NtfyNotifier)
        self.assertIsInstance(notifier.build_notifier({}), notifier.NoopNotifier)
        self.assertFalse(notifier.NoopNotifier().send("t", "b"))

    @patch("footiq.notifier.time.sleep")
    @patch("footiq.notifier.urllib.request.urlopen")
    def test_discord_retries_then_succeeds(self, urlopen, sleep) -> None:
        urlopen.side_effect = [urllib.error.URLError("flaky"), MagicMock()]

        self.assertTrue(notifier.DiscordNotifier("https://discord.example/hook").send("Kick-off", "Puzzles live", priority="high"))

        self.assertEqual(urlopen.call_count, 2)
        sleep.assert_called_once_with(0.25)
        payload = json.loads(urlopen.call_args[0][0].data.decode("utf-8"))
        self.assertEqual(payload["content"], ":rotating_light: **Kick-off**\nPuzzles live")

    @patch("footiq.notifier.time.sleep")
    @patch("footiq.notifier.urllib.request.urlopen", side_effect=urllib.error.URLError("down"))
    def test_ntfy_gives_up_after_three_attempts(self, urlopen, sleep) -> None:
        with self.assertLogs("footiq.notifier", level="WARNING"):
            sent = notifier.NtfyNotifier("https://ntfy.sh/footiq").send("Streak at risk", "Play now", priority="high")
        self.assertFalse(sent)
        self.assertEqual(urlopen.call_count, 3)
        req = urlopen.call_args[0][0]
        self.assertEqual(req.get_header("Priority"), "4")
        self.assertEqual(req.get_header("Title"), "Streak at risk")


class ReminderTests(DBTestCase):
    @patch("footiq.jobs.reminders.build_notifier")
    def test_morning_sent_once_per_day(self, build_notifier) -> None:
        seed_from_pack(DAY)

        self.assertTrue(reminders.send_morning(DAY))
        self.assertFalse(reminders.send_morning(DAY))

        build_notifier.return_value.send.assert_called_once()
        title, body = build_notifier.return_value.send.call_args[0]
        self.assertEqual(title, "Today's puzzles are live")
        self.assertIn("The Grid", body)
        self.assertTrue(db.was_reminder_sent("morning", DAY))

    @patch("footiq.jobs.reminders.build_notifier")
    def test_morning_skipped_without_live_puzzles(self, build_notifier) -> None:
        with self.assertLogs("footiq.jobs.reminders", level="INFO"):
            self.assertFalse(reminders.send_morning(DAY))
        build_notifier.assert_not_called()
        self.assertFalse(db.was_reminder_sent("morning", DAY))

    @patch("footiq.jobs.reminders.build_notifier")
    def test_evening_nudge_when_streak_at_risk(self, build_notifier) -> None:
        self.complete("topical_quiz", "2025-05-31")

        self.assertTrue(reminders.send_evening(DAY))
        self.assertFalse(reminders.send_evening(DAY))

        args, kwargs = build_notifier.return_value.send.call_args
        self.assertEqual(args[0], "Streak at risk")
        self.assertIn("1-day streak", args[1])
        self.assertEqual(kwargs["priority"], "high")

    def test_no_nudge_after_playing_today_or_without_streak(self) -> None:
        self.assertFalse(reminders.should_send_evening_nudge(DAY))
        self.complete("topical_quiz", "2025-05-31")
        self.assertTrue(reminders.should_send_evening_nudge(DAY))
        self.complete("the_grid", DAY)
        self.assertFalse(reminders.should_send_evening_nudge(DAY))


class GridAutofillTests(DBTestCase):
    def setUp(self) -> None:
        super().setUp()
        seed_reference_data(load_puzzle_pack())

    def test_only_empty_days_are_filled(self) -> None:
        db.upsert_puzzle({"game_mode": "the_grid", "puzzle_date": "2025-07-02", "status": "live", "content": GRID})
        generated = {"success": True, "data": {"grid": GRID}}
        with patch("footiq.jobs.grid_autofill.grid_sandbox.generate_grid", return_value=generated) as generate:
            result = grid_autofill.autofill_grids("2025-07-01", days=3, mode="clubs-nations")

        self.assertEqual([p["date"] for p in result["published"]], ["2025-07-01", "2025-07-03"])
        self.assertEqual(result["failed"], [])
        self.assertEqual(generate.call_count, 2)
        self.assertEqual(generate.call_args[0][0], "clubs-nations")
        self.assertEqual(db.get_puzzle_for_date("the_grid", "2025-07-03")["content"]["title"], "Daily Grid")

    def test_generation_failures_are_collected(self) -> None:
        failed = {"success": False, "error": "Not enough data to generate grid. Pools: 0 clubs, 0 nations, 0 trophies"}
        with patch("footiq.jobs.grid_autofill.grid_sandbox.generate_grid", return_value=failed):
            with self.assertLogs("footiq.jobs.grid_autofill", level="WARNING"):
                result = grid_autofill.autofill_grids("2025-07-01", days=2)
        self.assertEqual(result["published"], [])
        self.assertEqual([f["date"] for f in result["failed"]], ["2025-07-01", "2025-07-02"])

    def test_bad_start_date(self) -> None:
        with self.assertLogs("footiq.grid_sandbox", level="ERROR"):
            result = grid_autofill.autofill_grids("soon", days=2)
        self.assertEqual(result["published"], [])
        self.assertEqual(result["failed"][0]["date"], "soon")


class StubApiClient:
    def __init__(self, searches: dict, teams: dict) -> None:
        self.searches = searches
        self.teams = teams

    def search_players(self, name: str) -> dict:
        response = self.searches.get(name, [])
        return {"results": len(response), "response": response, "errors": []}

    def player_teams(self, api_football_id: int) -> list[dict]:
        return self.teams.get(api_football_id, [])


class MapExternalIdsTests(DBTestCase):
    def setUp(self) -> None:
        super().setUp()
        db.upsert_player({"id": "Q615", "name": "Lionel Messi", "scout_rank": 95, "nationality_code": "AR", "birth_year": 1987})
        db.upsert_player({"id": "Q1", "name": "Edu", "scout_rank": 10, "nationality_code": "BR", "birth_year": 1978})
        db.upsert_club({"id": "Q7156", "name": "FC Barcelona"})
        db.add_appearance("Q615", "Q7156", 2004, 2021)
        messi = {"player": {"id": 154, "name": "L. Messi", "birth": {"date": "1987-06-24"}, "nationality": "Argentina"}}
        barcelona = {"team": {"id": 529, "name": "Barcelona"}, "seasons": [2004, 2012, 2021]}
        self.client = StubApiClient({"Lionel Messi": [messi]}, {154: [barcelona]})

    def test_key_falls_back_to_environment(self) -> None:
        with patch.dict("os.environ", {"API_FOOTBALL_KEY": "from-env"}):
            self.assertEqual(map_external_ids.api_football_key({"api_football_key": ""}), "from-env")
            self.assertEqual(map_external_ids.api_football_key({"api_football_key": "stored"}), "stored")

    @patch("footiq.jobs.map_external_ids.build_notifier")
    def test_map_then_validate(self, build_notifier) -> None:
        mapped = map_external_ids.map_players(delay_ms=0, client=self.client)
        self.assertEqual([m["player_qid"] for m in mapped["mapped"]], ["Q615"])
        self.assertEqual([p["id"] for p in db.list_players_for_mapping(10)], ["Q1"])
        self.assertEqual(build_notifier.return_value.send.call_args[0][0], "API-Football mapping")

        checked = map_external_ids.validate_careers(delay_ms=0, client=self.client)
        self.assertEqual(checked["validated"][0]["total_discrepancies"], 0)
        self.assertEqual(db.get_club_api_map(), {"Q7156": 529})
        self.assertEqual(build_notifier.return_value.send.call_args[0][0], "API-Football career check")


if __name__ == "__main__":
    unittest.main()
