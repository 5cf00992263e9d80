"""Admin tools for building The Grid: candidate lookup, generation and publishing.

Every public function returns a result dict ``{"success": bool, "data": ...}``
or ``{"success": False, "error": message}`` so the admin endpoints can relay
failures without raising.
"""
from __future__ import annotations

import functools
import logging
import random
import sqlite3
from datetime import date, timedelta

from footiq import db
from footiq.achievements import (
    CODE_TO_COUNTRY_NAME,
    COUNTRY_NAME_TO_CODE,
    GRID_STAT_POOL,
    GRID_TROPHY_POOL,
    TROPHY_TO_STATS_KEY,
    parse_stat,
)
from footiq.play import player_matches_category
from footiq.schemas import ContentValidationError, validate_puzzle

logger = logging.getLogger(__name__)

MAX_GENERATION_ATTEMPTS = 20
MAX_CANDIDATES = 100
CLUB_POOL_SIZE = 40
CLUB_MIN_PLAYERS = 5
NATION_POOL_SIZE = 20
SEARCH_LIMIT = 10
CLUB_SUGGESTION_LIMIT = 8
GRID_MODES = ("mixed", "clubs-nations")


def ok(data) -> dict:
    return {"success": True, "data": data}


def fail(error: str) -> dict:
    return {"success": False, "error": error}


def admin_action(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (sqlite3.Error, ValueError, KeyError) as exc:
            logger.exception("Grid sandbox action %s failed", fn.__name__)
            return fail(str(exc))

    return wrapper


def _player_summary(player: dict) -> dict:
    return {
        "qid": player["id"],
        "name": player["name"],
        "scout_rank": player.get("scout_rank") or 0,
        "nationality_code": player.get("nationality_code"),
        "position_category": player.get("position_category"),
        "birth_year": player.get("birth_year"),
    }


@admin_action
def search_players(query: str) -> dict:
    if not query or len(query) < 2:
        return ok([])
    return ok([_player_summary(p) for p in db.search_players(query, limit=SEARCH_LIMIT)])


# -- criterion sets ------------------------------------------------------------


def player_ids_for_criterion(category: dict) -> list[str]:
    kind, value = category["type"], category["value"]

    if kind == "club":
        club = db.find_club_by_name(value)
        return db.list_club_player_ids(club["id"]) if club else []

    if kind == "nation":
        code = COUNTRY_NAME_TO_CODE.get(value)
        return db.list_player_ids_by_nationality(code) if code else []

    if kind == "trophy":
        key = TROPHY_TO_STATS_KEY.get(value)
        if not key:
            return []
        return [pid for pid, cache in db.load_stats_cache_map().items() if cache.get(key, 0) > 0]

    if kind == "stat":
        parsed = parse_stat(value)
        if parsed is None:
            return []
        threshold, key = parsed
        return [pid for pid, cache in db.load_stats_cache_map().items() if cache.get(key, 0) >= threshold]

    logger.warning("Unknown grid category type: %r", kind)
    return []


def _intersect(category_a: dict, category_b: dict) -> list[str]:
    set_a = player_ids_for_criterion(category_a)
    set_b = player_ids_for_criterion(category_b)
    if not set_a or not set_b:
        return []
    smaller, larger = (set_a, set(set_b)) if len(set_a) <= len(set_b) else (set_b, set(set_a))
    return [pid for pid in smaller if pid in larger]


def count_candidates(category_a: dict, category_b: dict) -> int:
    return len(_intersect(category_a, category_b))


@admin_action
def validate_cell(player_qid: str, category_a: dict, category_b: dict) -> dict:
    player = db.get_player_by_id(player_qid)
    if not player:
        return ok({"is_valid": False, "matches_a": False, "matches_b": False, "player_name": None, "stats_cache": None})
    matches_a = player_matches_category(player, category_a)
    matches_b = player_matches_category(player, category_b)
    return ok(
        {
            "is_valid": matches_a and matches_b,
            "matches_a": matches_a,
            "matches_b": matches_b,
            "player_name": player["name"],
            "stats_cache": player["stats_cache"] or None,
        }
    )


@admin_action
def get_valid_players_for_cell(category_a: dict, category_b: dict) -> dict:
    """Players fitting both categories, most obscure (lowest scout rank) first."""
    ids = _intersect(category_a, category_b)[:MAX_CANDIDATES]
    candidates = [_player_summary(p) for p in db.get_players_by_ids(ids)]
    if not candidates:
        return ok([])
    max_rank = max([c["scout_rank"] for c in candidates] + [1])
    for c in candidates:
        c["rarity_score"] = round(100 - c["scout_rank"] / max_rank * 100)
    candidates.sort(key=lambda c: c["rarity_score"], reverse=True)
    return ok(candidates)


# -- pools ---------------------------------------------------------------------


def build_club_pool() -> list[dict]:
    clubs = db.list_clubs()
    if not clubs:
        return []
    counts = db.count_players_per_club()
    if not counts:
        return [{"type": "club", "value": c["name"]} for c in clubs[:CLUB_POOL_SIZE]]
    names = {c["id"]: c["name"] for c in clubs}
    ranked = sorted((item for item in counts.items() if item[1] >= CLUB_MIN_PLAYERS), key=lambda item: item[1], reverse=True)
    return [{"type": "club", "value": names[club_id]} for club_id, _ in ranked[:CLUB_POOL_SIZE] if club_id in names]


def build_nation_pool() -> list[dict]:
    pool = []
    for code, _ in db.count_players_per_nationality()[:NATION_POOL_SIZE]:
        name = CODE_TO_COUNTRY_NAME.get(code, code)
        if name in COUNTRY_NAME_TO_CODE:
            pool.append({"type": "nation", "value": name})
    return pool


def build_trophy_pool() -> list[dict]:
    available = set()
    for cache in db.load_stats_cache_map().values():
        available.update(k for k, v in cache.items() if isinstance(v, (int, float)) and v > 0)
    return [{"type": "trophy", "value": name} for name in GRID_TROPHY_POOL if TROPHY_TO_STATS_KEY.get(name) in available]


def _shuffled(items: list, rng: random.Random) -> list:
    out = list(items)
    rng.shuffle(out)
    return out


def pick_categories(clubs: list[dict], nations: list[dict], trophies: list[dict], stats: list[str], rng: random.Random) -> dict | None:
    """Pick six distinct categories, at most two from the low-overlap trophy/stat pool."""
    high = _shuffled(_shuffled(clubs, rng) + _shuffled(nations, rng), rng)
    low = _shuffled(_shuffled(trophies, rng) + [{"type": "stat", "value": s} for s in _shuffled(stats, rng)], rng)

    low_count = (2 if rng.random() > 0.5 else 1) if low else 0
    high_count = 6 - low_count

    picked: list[dict] = []
    used: set[str] = set()

    def take(pool: list[dict], limit: int) -> None:
        for category in pool:
            if len(picked) >= limit:
                break
            if category["value"] in used:
                continue
            picked.append(category)
            used.add(category["value"])

    take(high, high_count)
    take(low, 6)
    take(high, 6)

    if len(picked) < 6 or len({c["type"] for c in picked}) < 2:
        return None
    final = _shuffled(picked, rng)
    return {"xAxis": final[:3], "yAxis": final[3:]}


def _solvability(x_axis: list[dict], y_axis: list[dict], stop_on_empty: bool) -> list[dict]:
    cells = []
    for row in range(3):
        for col in range(3):
            count = count_candidates(y_axis[row], x_axis[col])
            cells.append({"cell_index": row * 3 + col, "row": y_axis[row], "col": x_axis[col], "player_count": count})
            if stop_on_empty and count == 0:
                return cells
    return cells


@admin_action
def generate_grid(mode: str = "mixed", rng: random.Random | None = None) -> dict:
    if mode not in GRID_MODES:
        return fail(f"Unknown grid mode {mode!r}")
    rng = rng or random.Random()
    clubs = build_club_pool()
    nations = build_nation_pool()
    trophies = [] if mode == "clubs-nations" else build_trophy_pool()
    stats = [] if mode == "clubs-nations" else list(GRID_STAT_POOL)
    debug = {"clubs": len(clubs), "nations": len(nations), "trophies": len(trophies), "stats": len(stats), "attempts": 0}
    pools = f"Pools: {debug['clubs']} clubs, {debug['nations']} nations, {debug['trophies']} trophies"

    if len(clubs) < 2 and len(nations) < 2:
        return fail(f"Not enough data to generate grid. {pools}")

    for attempt in range(1, MAX_GENERATION_ATTEMPTS + 1):
        debug["attempts"] = attempt
        categories = pick_categories(clubs, nations, trophies, stats, rng)
        if not categories:
            continue
        solvability = _solvability(categories["xAxis"], categories["yAxis"], stop_on_empty=True)
        if len(solvability) == 9 and all(cell["player_count"] > 0 for cell in solvability):
            grid = {**categories, "cellCounts": [cell["player_count"] for cell in solvability]}
            logger.info("Generated %s grid after %d attempts", mode, attempt)
            return ok({"grid": grid, "solvability": solvability, "debug": debug})

    return fail(f"Could not generate a solvable grid after {debug['attempts']} attempts. {pools}")


@admin_action
def validate_manual_grid(x_axis: list[dict], y_axis: list[dict]) -> dict:
    if len(x_axis) != 3 or len(y_axis) != 3:
        return fail("A grid needs exactly 3 categories per axis")
    solvability = _solvability(x_axis, y_axis, stop_on_empty=False)
    grid = {"xAxis": x_axis, "yAxis": y_axis, "cellCounts": [cell["player_count"] for cell in solvability]}
    return ok({"grid": grid, "solvability": solvability})


@admin_action
def suggest_clubs(query: str) -> dict:
    if not query or len(query) < 2:
        return ok([])
    return ok([c["name"] for c in db.search_clubs(query, limit=CLUB_SUGGESTION_LIMIT)])


@admin_action
def prune_orphan_clubs() -> dict:
    deleted, remaining = db.delete_orphan_clubs()
    if deleted:
        logger.info("Pruned %d orphan clubs", len(deleted))
    return ok({"deleted": deleted, "remaining": remaining})


# -- scheduling ----------------------------------------------------------------


@admin_action
def get_grid_schedule(start_date: str, days: int = 7) -> dict:
    if days < 1:
        return fail(f"days must be at least 1, got {days}")
    start = date.fromisoformat(start_date)
    dates = [(start + timedelta(days=i)).isoformat() for i in range(days)]
    scheduled = {p["puzzle_date"]: p["content"].get("title") for p in db.list_puzzles("the_grid", dates[0], dates[-1])}
    return ok([{"date": d, "has_grid": d in scheduled, "title": scheduled.get(d)} for d in dates])


@admin_action
def publish_grid(grid: dict, publish_date: str, title: str | None = None, description: str | None = None) -> dict:
    content = {"xAxis": grid["xAxis"], "yAxis": grid["yAxis"]}
    if title:
        content["title"] = title
    if description:
        content["description"] = description
    try:
        puzzle = validate_puzzle(
            {"game_mode": "the_grid", "puzzle_date": publish_date, "status": "live", "source": "manual", "content": content}
        )
        saved = db.upsert_puzzle(puzzle, replace=False)
    except ContentValidationError as exc:
        return fail(str(exc))
    except db.DuplicatePuzzleError:
        return fail(f"A grid is already scheduled for {publish_date}. Choose a different date.")
    logger.info("Published grid %s for %s", saved["id"], publish_date)
    return ok({"id": saved["id"]})
