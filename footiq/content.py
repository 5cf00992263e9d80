from __future__ import annotations

import hashlib
import json
import logging
import random
from pathlib import Path

from footiq import db
from footiq.schemas import GAME_MODES, validate_puzzle

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent / "puzzle_packs"
DEFAULT_PACK = "default"


def _load_json(path: Path, fallback):
    if not path.exists():
        return fallback
    return json.loads(path.read_text(encoding="utf-8-sig"))


def stable_seed(*parts: str) -> int:
    raw = "::".join(parts).encode("utf-8")
    return int(hashlib.sha256(raw).hexdigest()[:16], 16)


def load_puzzle_pack(pack_key: str | None = None) -> dict:
    key = pack_key or DEFAULT_PACK
    pack_file = BASE_DIR / f"{key}.json"
    if not pack_file.exists():
        logger.warning("Puzzle pack %r not found, using %r", key, DEFAULT_PACK)
        pack_file = BASE_DIR / f"{DEFAULT_PACK}.json"
    pack = _load_json(pack_file, {})
    return {
        "clubs": pack.get("clubs", []),
        "players": pack.get("players", []),
        "appearances": pack.get("appearances", []),
        "templates": pack.get("templates", {}),
    }


def weighted_choice(rng: random.Random, entries: list[dict]) -> dict:
    if not entries:
        return {}
    total = sum(max(1, int(entry.get("weight", 1))) for entry in entries)
    pick = rng.randint(1, total)
    running = 0
    for entry in entries:
        running += max(1, int(entry.get("weight", 1)))
        if pick <= running:
            return entry
    return entries[-1]


def seed_reference_data(pack: dict) -> dict:
    """Load the pack's clubs, players and career appearances into the database."""
    for club in pack["clubs"]:
        db.upsert_club(club)
    for player in pack["players"]:
        db.upsert_player(player)
    for appearance in pack["appearances"]:
        db.add_appearance(appearance["player_id"], appearance["club_id"], appearance.get("start_year"), appearance.get("end_year"))
    return {"clubs": len(pack["clubs"]), "players": len(pack["players"]), "appearances": len(pack["appearances"])}


def ensure_daily_puzzles(for_date: str, pack: dict | None = None) -> list[dict]:
    """Schedule a live puzzle for every mode that has nothing on for_date.

    The template is chosen by a seed derived from mode and date, so the same
    day always gets the same puzzle.
    """
    pack = pack or load_puzzle_pack()
    created = []
    for mode in GAME_MODES:
        if db.get_puzzle_for_date(mode, for_date, live_only=False):
            continue
        templates = pack["templates"].get(mode) or []
        if not templates:
            continue
        template = weighted_choice(random.Random(stable_seed(mode, for_date)), templates)
        puzzle = validate_puzzle(
            {
                "game_mode": mode,
                "puzzle_date": for_date,
                "status": "live",
                "difficulty": template.get("difficulty"),
                "source": "pack",
                "content": template["content"],
            }
        )
        created.append(db.upsert_puzzle(puzzle, replace=False))
        logger.info("Scheduled %s puzzle for %s from pack", mode, for_date)
    return created


def seed_from_pack(for_date: str, pack_key: str | None = None) -> dict:
    pack = load_puzzle_pack(pack_key)
    counts = seed_reference_data(pack)
    counts["puzzles"] = len(ensure_daily_puzzles(for_date, pack))
    return counts
