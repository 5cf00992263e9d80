from __future__ import annotations

import random
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import footiq.db as db
from footiq import content
from footiq.schemas import GAME_MODES, validate_puzzle


class ContentLoadingTests(unittest.TestCase):
    def test_load_json_reads_files_as_utf8(self) -> None:
        with patch.object(Path, "exists", return_value=True), patch.object(
            Path,
            "read_text",
            autospec=True,
            return_value='{"ok": true}',
        ) as mock_read:
            data = content._load_json(Path("dummy.json"), {})

        self.assertEqual(data, {"ok": True})
        _, kwargs = mock_read.call_args
        self.assertEqual(kwargs.get("encoding"), "utf-8-sig")

    def test_missing_file_returns_fallback(self) -> None:
        with patch.object(Path, "exists", return_value=False):
            self.assertEqual(content._load_json(Path("missing.json"), {"x": 1}), {"x": 1})

    def test_unknown_pack_falls_back_to_default(self) -> None:
        with self.assertLogs("footiq.content", level="WARNING"):
            pack = content.load_puzzle_pack("no_such_pack")
        self.assertEqual(pack, content.load_puzzle_pack())

    def test_every_pack_template_is_valid(self) -> None:
        pack = content.load_puzzle_pack()
        for mode in GAME_MODES:
            self.assertTrue(pack["templates"].get(mode), mode)
            for template in pack["templates"][mode]:
                validate_puzzle({"game_mode": mode, "puzzle_date": "2025-01-01", "content": template["content"]})

    def test_stable_seed_is_deterministic(self) -> None:
        self.assertEqual(content.stable_seed("the_grid", "2025-01-01"), content.stable_seed("the_grid", "2025-01-01"))
        self.assertNotEqual(content.stable_seed("the_grid", "2025-01-01"), content.stable_seed("the_grid", "2025-01-02"))


class PackSeedingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.old = db.DB_PATH
        db.DB_PATH = Path(self.tmp.name) / "pack.sqlite3"
        db.init_db()

    def tearDown(self) -> None:
        db.DB_PATH = self.old
        self.tmp.cleanup()

    def test_seed_schedules_one_live_puzzle_per_mode(self) -> None:
        counts = content.seed_from_pack("2025-03-01")
        self.assertEqual(counts["puzzles"], len(GAME_MODES))
        self.assertGreater(counts["players"], 0)
        for mode in GAME_MODES:
            puzzle = db.get_puzzle_for_date(mode, "2025-03-01")
            self.assertIsNotNone(puzzle)
            self.assertEqual(puzzle["status"], "live")
            self.assertEqual(puzzle["source"], "pack")

    def test_seeding_twice_keeps_existing_puzzles(self) -> None:
        content.seed_from_pack("2025-03-01")
        first = {m: db.get_puzzle_for_date(m, "2025-03-01")["id"] for m in GAME_MODES}
        counts = content.seed_from_pack("2025-03-01")
        self.assertEqual(counts["puzzles"], 0)
        self.assertEqual(first, {m: db.get_puzzle_for_date(m, "2025-03-01")["id"] for m in GAME_MODES})

    def test_same_date_picks_same_template(self) -> None:
        pack = content.load_puzzle_pack()
        content.ensure_daily_puzzles("2025-03-05", pack)
        a = db.get_puzzle_for_date("the_thread", "2025-03-05")["content"]

        other = tempfile.TemporaryDirectory()
        self.addCleanup(other.cleanup)
        db.DB_PATH = Path(other.name) / "again.sqlite3"
        db.init_db()
        content.ensure_daily_puzzles("2025-03-05", pack)
        b = db.get_puzzle_for_date("the_thread", "2025-03-05")["content"]
        self.assertEqual(a, b)

    def test_weighted_choice_respects_single_entry(self) -> None:
        entry = {"weight": 3, "content": {}}
        self.assertIs(content.weighted_choice(random.Random(1), [entry]), entry)
        self.assertEqual(content.weighted_choice(random.Random(1), []), {})


if __name__ == "__main__":
    unittest.main()
