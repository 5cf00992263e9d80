from __future__ import annotations

import json
import logging
import os
import sqlite3
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from footiq.validation import normalize_string

logger = logging.getLogger(__name__)

DB_PATH = Path(os.environ.get("FOOTIQ_DB_PATH") or Path(__file__).resolve().parent.parent / "footiq.sqlite3")

DEFAULT_SETTINGS = {
    "id": 1,
    "display_name": "Manager",
    "day_timezone": "Europe/London",
    "testing_mode": 0,
    "discord_webhook_url": "",
    "ntfy_topic_url": "",
    "api_football_key": "",
    "total_iq": 0,
}

EXPORT_TABLES = [
    "settings",
    "app_state",
    "puzzles",
    "attempts",
    "players",
    "clubs",
    "player_appearances",
    "grid_cell_selections",
    "streak_freezes",
    "event_log",
]


class PuzzleNotFoundError(LookupError):
    pass


class NoStreakFreezesError(LookupError):
    pass


class DuplicatePuzzleError(ValueError):
    def __init__(self, game_mode: str, puzzle_date: str) -> None:
        self.game_mode = game_mode
        self.puzzle_date = puzzle_date
        super().__init__(f"A {game_mode} puzzle already exists for {puzzle_date}")


def get_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


def _parse_json(raw: str | None, fallback=None):
    if not raw:
        return fallback
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding unreadable JSON column value")
        return fallback


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, definition: str) -> None:
    cols = conn.execute(f"PRAGMA table_info({table})").fetchall()
    if column not in {c[1] for c in cols}:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


def _insert_event(conn: sqlite3.Connection, event_date: str, kind: str, text: str, meta: dict | None = None) -> None:
    conn.execute(
        "INSERT INTO event_log (date, kind, text, meta_json) VALUES (?, ?, ?, ?)",
        (event_date, kind, text, json.dumps(meta or {})),
    )


def init_db() -> None:
    conn = get_conn()
    try:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS settings (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                display_name TEXT NOT NULL,
                day_timezone TEXT NOT NULL,
                testing_mode INTEGER NOT NULL DEFAULT 0,
                discord_webhook_url TEXT NOT NULL DEFAULT '',
                ntfy_topic_url TEXT NOT NULL DEFAULT '',
                total_iq INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS app_state (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                simulated_date TEXT
            );

            CREATE TABLE IF NOT EXISTS puzzles (
                id TEXT PRIMARY KEY,
                game_mode TEXT NOT NULL,
                puzzle_date TEXT NOT NULL,
                content_json TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'draft',
                difficulty TEXT,
                source TEXT,
                created_at TEXT NOT NULL,
                UNIQUE (game_mode, puzzle_date)
            );

            CREATE TABLE IF NOT EXISTS attempts (
                id TEXT PRIMARY KEY,
                puzzle_id TEXT NOT NULL REFERENCES puzzles(id) ON DELETE CASCADE,
                completed INTEGER NOT NULL DEFAULT 0,
                score INTEGER NOT NULL DEFAULT 0,
                score_display TEXT,
                metadata_json TEXT,
                started_at TEXT NOT NULL,
                completed_at TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_attempts_puzzle ON attempts (puzzle_id);

            CREATE TABLE IF NOT EXISTS players (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                search_name TEXT NOT NULL,
                scout_rank INTEGER NOT NULL DEFAULT 0,
                nationality_code TEXT,
                position_category TEXT,
                birth_year INTEGER,
                stats_cache_json TEXT
            );

            CREATE TABLE IF NOT EXISTS clubs (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                country_code TEXT
            );

            CREATE TABLE IF NOT EXISTS player_appearances (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                player_id TEXT NOT NULL REFERENCES players(id) ON DELETE CASCADE,
                club_id TEXT NOT NULL REFERENCES clubs(id) ON DELETE CASCADE,
                start_year INTEGER,
                end_year INTEGER,
                UNIQUE (player_id, club_id, start_year)
            );

            CREATE TABLE IF NOT EXISTS grid_cell_selections (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                puzzle_id TEXT NOT NULL,
                cell_index INTEGER NOT NULL CHECK (cell_index BETWEEN 0 AND 8),
                player_id TEXT NOT NULL,
                player_name TEXT NOT NULL,
                nationality_code TEXT,
                selection_count INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (puzzle_id, cell_index, player_id)
            );

            CREATE TABLE IF NOT EXISTS streak_freezes (
                date TEXT PRIMARY KEY,
                used_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS reminder_log (
                kind TEXT NOT NULL,
                date TEXT NOT NULL,
                sent_at TEXT NOT NULL,
                PRIMARY KEY (kind, date)
            );

            CREATE TABLE IF NOT EXISTS event_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                date TEXT NOT NULL,
                kind TEXT NOT NULL,
                text TEXT NOT NULL,
                meta_json TEXT
            );
            """
        )

        _ensure_column(conn, "settings", "api_football_key", "TEXT NOT NULL DEFAULT ''")
        _ensure_column(conn, "players", "api_football_id", "INTEGER")
        _ensure_column(conn, "clubs", "api_football_id", "INTEGER")
        _ensure_column(conn, "settings", "freezes_available", "INTEGER NOT NULL DEFAULT 1")
        _ensure_column(conn, "settings", "freeze_last_milestone", "INTEGER NOT NULL DEFAULT 0")

        conn.execute(
            """
            INSERT INTO settings (
                id, display_name, day_timezone, testing_mode, discord_webhook_url,
                ntfy_topic_url, api_football_key, total_iq
            ) VALUES (
                :id, :display_name, :day_timezone, :testing_mode, :discord_webhook_url,
                :ntfy_topic_url, :api_football_key, :total_iq
            ) ON CONFLICT(id) DO NOTHING
            """,
            DEFAULT_SETTINGS,
        )
        conn.execute("INSERT INTO app_state (id, simulated_date) VALUES (1, NULL) ON CONFLICT(id) DO NOTHING")
        conn.commit()
    finally:
        conn.close()


# -- settings and clock ------------------------------------------------------


def get_settings() -> dict:
    conn = get_conn()
    try:
        row = conn.execute("SELECT * FROM settings WHERE id = 1").fetchone()
        if not row:
            raise RuntimeError("Missing settings row; call init_db() first")
        return dict(row)
    finally:
        conn.close()


def update_settings(
    display_name: str,
    day_timezone: str,
    testing_mode: bool,
    discord_webhook_url: str,
    ntfy_topic_url: str,
    api_football_key: str | None = None,
) -> None:
    conn = get_conn()
    try:
        conn.execute(
            """
            UPDATE settings
            SET display_name = ?, day_timezone = ?, testing_mode = ?, discord_webhook_url = ?, ntfy_topic_url = ?
            WHERE id = 1
            """,
            (
                display_name.strip() or DEFAULT_SETTINGS["display_name"],
                day_timezone.strip() or DEFAULT_SETTINGS["day_timezone"],
                int(testing_mode),
                discord_webhook_url.strip(),
                ntfy_topic_url.strip(),
            ),
        )
        if api_football_key is not None:
            conn.execute("UPDATE settings SET api_football_key = ? WHERE id = 1", (api_football_key.strip(),))
        if testing_mode:
            local_today = _local_now(day_timezone.strip() or DEFAULT_SETTINGS["day_timezone"]).date().isoformat()
            conn.execute("UPDATE app_state SET simulated_date = COALESCE(simulated_date, ?) WHERE id = 1", (local_today,))
        else:
            conn.execute("UPDATE app_state SET simulated_date = NULL WHERE id = 1")
        conn.commit()
    finally:
        conn.close()


def _local_now(tz_name: str) -> datetime:
    try:
        return datetime.now(ZoneInfo(tz_name))
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Timezone %r unavailable, using local clock", tz_name)
        return datetime.now()


def get_schedule_context() -> dict:
    settings = get_settings()
    now = _local_now(settings["day_timezone"])
    return {
        "local_date": get_app_today(),
        "local_hour": now.hour,
        "local_minute": now.minute,
        "timezone": settings["day_timezone"],
    }


def get_app_today() -> str:
    conn = get_conn()
    try:
        settings = conn.execute("SELECT testing_mode, day_timezone FROM settings WHERE id = 1").fetchone()
        state = conn.execute("SELECT simulated_date FROM app_state WHERE id = 1").fetchone()
    finally:
        conn.close()
    if settings and settings["testing_mode"] and state and state["simulated_date"]:
        return state["simulated_date"]
    tz_name = settings["day_timezone"] if settings else DEFAULT_SETTINGS["day_timezone"]
    return _local_now(tz_name).date().isoformat()


def today_key() -> str:
    return get_app_today()


def testing_advance_day(days: int = 1) -> str:
    conn = get_conn()
    try:
        new_date = (date.fromisoformat(get_app_today()) + timedelta(days=days)).isoformat()
        conn.execute("UPDATE app_state SET simulated_date = ? WHERE id = 1", (new_date,))
        conn.commit()
        return new_date
    finally:
        conn.close()


# -- puzzles -------------------------------------------------------------------


def _puzzle_from_row(row: sqlite3.Row) -> dict:
    out = dict(row)
    out["content"] = _parse_json(out.pop("content_json"), {})
    return out


def upsert_puzzle(puzzle: dict, replace: bool = True) -> dict:
    """Insert a puzzle, or replace the one already scheduled for that mode and date."""
    conn = get_conn()
    try:
        existing = conn.execute(
            "SELECT id FROM puzzles WHERE game_mode = ? AND puzzle_date = ?",
            (puzzle["game_mode"], puzzle["puzzle_date"]),
        ).fetchone()
        if existing and not replace:
            raise DuplicatePuzzleError(puzzle["game_mode"], puzzle["puzzle_date"])
        puzzle_id = existing["id"] if existing else (puzzle.get("id") or new_id())
        conn.execute(
            """
            INSERT INTO puzzles (id, game_mode, puzzle_date, content_json, status, difficulty, source, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                content_json = excluded.content_json,
                status = excluded.status,
                difficulty = excluded.difficulty,
                source = excluded.source
            """,
            (
                puzzle_id,
                puzzle["game_mode"],
                puzzle["puzzle_date"],
                json.dumps(puzzle.get("content") or {}),
                puzzle.get("status") or "draft",
                puzzle.get("difficulty"),
                puzzle.get("source"),
                utc_now_iso(),
            ),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM puzzles WHERE id = ?", (puzzle_id,)).fetchone()
        assert row is not None
        return _puzzle_from_row(row)
    finally:
        conn.close()


def get_puzzle(puzzle_id: str) -> dict:
    conn = get_conn()
    try:
        row = conn.execute("SELECT * FROM puzzles WHERE id = ?", (puzzle_id,)).fetchone()
        if not row:
            raise PuzzleNotFoundError(puzzle_id)
        return _puzzle_from_row(row)
    finally:
        conn.close()


def get_puzzle_for_date(game_mode: str, puzzle_date: str, live_only: bool = True) -> dict | None:
    conn = get_conn()
    try:
        sql = "SELECT * FROM puzzles WHERE game_mode = ? AND puzzle_date = ?"
        if live_only:
            sql += " AND status = 'live'"
        row = conn.execute(sql, (game_mode, puzzle_date)).fetchone()
        return _puzzle_from_row(row) if row else None
    finally:
        conn.close()


def list_puzzles(game_mode: str | None = None, start_date: str | None = None, end_date: str | None = None) -> list[dict]:
    clauses, params = [], []
    if game_mode:
        clauses.append("game_mode = ?")
        params.append(game_mode)
    if start_date:
        clauses.append("puzzle_date >= ?")
        params.append(start_date)
    if end_date:
        clauses.append("puzzle_date <= ?")
        params.append(end_date)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    conn = get_conn()
    try:
        rows = conn.execute(f"SELECT * FROM puzzles {where} ORDER BY puzzle_date, game_mode", params).fetchall()
        return [_puzzle_from_row(r) for r in rows]
    finally:
        conn.close()


# -- attempts ------------------------------------------------------------------


def _attempt_from_row(row: sqlite3.Row) -> dict:
    out = dict(row)
    out["metadata"] = _parse_json(out.pop("metadata_json"), {})
    out["completed"] = bool(out["completed"])
    return out


def get_attempt(attempt_id: str) -> dict | None:
    conn = get_conn()
    try:
        row = conn.execute("SELECT * FROM attempts WHERE id = ?", (attempt_id,)).fetchone()
        return _attempt_from_row(row) if row else None
    finally:
        conn.close()


def get_attempt_for_puzzle(puzzle_id: str) -> dict | None:
    conn = get_conn()
    try:
        row = conn.execute(
            "SELECT * FROM attempts WHERE puzzle_id = ? ORDER BY completed DESC, started_at DESC LIMIT 1",
            (puzzle_id,),
        ).fetchone()
        return _attempt_from_row(row) if row else None
    finally:
        conn.close()


def start_attempt(puzzle_id: str, metadata: dict | None = None) -> dict:
    attempt_id = new_id()
    conn = get_conn()
    try:
        conn.execute(
            "INSERT INTO attempts (id, puzzle_id, completed, score, metadata_json, started_at) VALUES (?, ?, 0, 0, ?, ?)",
            (attempt_id, puzzle_id, json.dumps(metadata or {}), utc_now_iso()),
        )
        conn.commit()
    finally:
        conn.close()
    attempt = get_attempt(attempt_id)
    assert attempt is not None
    return attempt


def save_attempt_progress(attempt_id: str, metadata: dict) -> None:
    conn = get_conn()
    try:
        conn.execute(
            "UPDATE attempts SET metadata_json = ? WHERE id = ? AND completed = 0",
            (json.dumps(metadata), attempt_id),
        )
        conn.commit()
    finally:
        conn.close()


def complete_attempt(attempt_id: str, score: int, score_display: str | None, metadata: dict) -> bool:
    """Mark an attempt completed. Returns False when it was already completed.

    Completing with a positive score adds that score to the running total IQ.
    """
    conn = get_conn()
    try:
        row = conn.execute("SELECT a.completed, p.puzzle_date, p.game_mode FROM attempts a JOIN puzzles p ON p.id = a.puzzle_id WHERE a.id = ?", (attempt_id,)).fetchone()
        if not row:
            raise LookupError(f"Unknown attempt {attempt_id}")
        if row["completed"]:
            return False
        conn.execute(
            """
            UPDATE attempts
            SET completed = 1, score = ?, score_display = ?, metadata_json = ?, completed_at = ?
            WHERE id = ?
            """,
            (int(score), score_display, json.dumps(metadata), utc_now_iso(), attempt_id),
        )
        if score > 0:
            conn.execute("UPDATE settings SET total_iq = total_iq + ? WHERE id = 1", (int(score),))
        _insert_event(conn, row["puzzle_date"], "attempt", f"Completed {row['game_mode']} ({score} pts).", {"attempt_id": attempt_id})
        conn.commit()
        return True
    finally:
        conn.close()


def list_attempts(completed_only: bool = True, game_mode: str | None = None) -> list[dict]:
    sql = """
        SELECT a.*, p.game_mode, p.puzzle_date
        FROM attempts a JOIN puzzles p ON p.id = a.puzzle_id
    """
    clauses, params = [], []
    if completed_only:
        clauses.append("a.completed = 1")
    if game_mode:
        clauses.append("p.game_mode = ?")
        params.append(game_mode)
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY p.puzzle_date DESC, a.started_at DESC"
    conn = get_conn()
    try:
        return [_attempt_from_row(r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def get_total_iq() -> int:
    return int(get_settings()["total_iq"])


def use_streak_freeze(freeze_date: str) -> bool:
    """Spend one freeze on a missed day. False when that day is already frozen."""
    conn = get_conn()
    try:
        if conn.execute("SELECT 1 FROM streak_freezes WHERE date = ?", (freeze_date,)).fetchone():
            return False
        available = conn.execute("SELECT freezes_available FROM settings WHERE id = 1").fetchone()["freezes_available"]
        if available <= 0:
            raise NoStreakFreezesError(f"No streak freezes left to cover {freeze_date}")
        conn.execute("UPDATE settings SET freezes_available = freezes_available - 1 WHERE id = 1")
        conn.execute("INSERT INTO streak_freezes (date, used_at) VALUES (?, ?)", (freeze_date, utc_now_iso()))
        conn.commit()
        return True
    finally:
        conn.close()


def get_available_freezes() -> int:
    return int(get_settings()["freezes_available"])


def award_milestone_freeze(milestone: int, max_freezes: int) -> bool:
    """Grant one freeze per streak milestone, once, up to max_freezes held."""
    conn = get_conn()
    try:
        row = conn.execute("SELECT freezes_available, freeze_last_milestone FROM settings WHERE id = 1").fetchone()
        if milestone <= row["freeze_last_milestone"]:
            return False
        conn.execute(
            "UPDATE settings SET freezes_available = ?, freeze_last_milestone = ? WHERE id = 1",
            (min(row["freezes_available"] + 1, max_freezes), milestone),
        )
        conn.commit()
        return row["freezes_available"] < max_freezes
    finally:
        conn.close()


def list_streak_freezes() -> list[str]:
    conn = get_conn()
    try:
        return [r["date"] for r in conn.execute("SELECT date FROM streak_freezes ORDER BY date").fetchall()]
    finally:
        conn.close()


# -- players and clubs ---------------------------------------------------------


def _player_from_row(row: sqlite3.Row) -> dict:
    out = dict(row)
    out["stats_cache"] = _parse_json(out.pop("stats_cache_json", None), {})
    return out


def upsert_player(player: dict) -> None:
    conn = get_conn()
    try:
        conn.execute(
            """
            INSERT INTO players (id, name, search_name, scout_rank, nationality_code, position_category, birth_year, stats_cache_json, api_football_id)
            VALUES (:id, :name, :search_name, :scout_rank, :nationality_code, :position_category, :birth_year, :stats_cache_json, :api_football_id)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                search_name = excluded.search_name,
                scout_rank = excluded.scout_rank,
                nationality_code = excluded.nationality_code,
                position_category = excluded.position_category,
                birth_year = excluded.birth_year,
                stats_cache_json = excluded.stats_cache_json,
                api_football_id = COALESCE(excluded.api_football_id, players.api_football_id)
            """,
            {
                "id": player["id"],
                "name": player["name"],
                "search_name": player.get("search_name") or _search_name(player["name"]),
                "scout_rank": int(player.get("scout_rank") or 0),
                "nationality_code": player.get("nationality_code"),
                "position_category": player.get("position_category"),
                "birth_year": player.get("birth_year"),
                "stats_cache_json": json.dumps(player.get("stats_cache") or {}),
                "api_football_id": player.get("api_football_id"),
            },
        )
        conn.commit()
    finally:
        conn.close()


def _search_name(name: str) -> str:
    return normalize_string(name)


def upsert_club(club: dict) -> None:
    conn = get_conn()
    try:
        conn.execute(
            """
            INSERT INTO clubs (id, name, country_code, api_football_id) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET name = excluded.name, country_code = excluded.country_code,
                api_football_id = COALESCE(excluded.api_football_id, clubs.api_football_id)
            """,
            (club["id"], club["name"], club.get("country_code"), club.get("api_football_id")),
        )
        conn.commit()
    finally:
        conn.close()


def add_appearance(player_id: str, club_id: str, start_year: int | None = None, end_year: int | None = None) -> None:
    conn = get_conn()
    try:
        # NULL start years never collide under the UNIQUE constraint
        row = conn.execute(
            "SELECT id FROM player_appearances WHERE player_id = ? AND club_id = ? AND start_year IS ?",
            (player_id, club_id, start_year),
        ).fetchone()
        if row:
            conn.execute("UPDATE player_appearances SET end_year = ? WHERE id = ?", (end_year, row["id"]))
        else:
            conn.execute(
                "INSERT INTO player_appearances (player_id, club_id, start_year, end_year) VALUES (?, ?, ?, ?)",
                (player_id, club_id, start_year, end_year),
            )
        conn.commit()
    finally:
        conn.close()


def get_player_by_id(player_id: str) -> dict | None:
    conn = get_conn()
    try:
        row = conn.execute("SELECT * FROM players WHERE id = ?", (player_id,)).fetchone()
        return _player_from_row(row) if row else None
    finally:
        conn.close()


def get_player_nationality(player_id: str) -> str | None:
    player = get_player_by_id(player_id)
    return player["nationality_code"] if player else None


def get_player_stats_cache(player_id: str) -> dict:
    player = get_player_by_id(player_id)
    return player["stats_cache"] if player else {}


def player_played_for(player_id: str, club_name: str) -> bool:
    """True when the player has an appearance at a club whose name contains club_name."""
    conn = get_conn()
    try:
        row = conn.execute(
            """
            SELECT 1 FROM player_appearances pa JOIN clubs c ON c.id = pa.club_id
            WHERE pa.player_id = ? AND c.name LIKE ? LIMIT 1
            """,
            (player_id, f"%{club_name}%"),
        ).fetchone()
        return row is not None
    finally:
        conn.close()


def search_players(query: str, limit: int = 10) -> list[dict]:
    if not query or len(query.strip()) < 2:
        return []
    conn = get_conn()
    try:
        rows = conn.execute(
            "SELECT * FROM players WHERE search_name LIKE ? ORDER BY scout_rank DESC, name LIMIT ?",
            (f"%{_search_name(query)}%", limit),
        ).fetchall()
        return [_player_from_row(r) for r in rows]
    finally:
        conn.close()


def get_player_appearances(player_id: str) -> list[dict]:
    conn = get_conn()
    try:
        rows = conn.execute(
            """
            SELECT pa.club_id, c.name AS club_name, pa.start_year, pa.end_year, c.api_football_id AS club_api_football_id
            FROM player_appearances pa JOIN clubs c ON c.id = pa.club_id
            WHERE pa.player_id = ? ORDER BY pa.start_year
            """,
            (player_id,),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def list_players_for_mapping(limit: int, unmapped_only: bool = True) -> list[dict]:
    sql = "SELECT * FROM players"
    if unmapped_only:
        sql += " WHERE api_football_id IS NULL"
    else:
        sql += " WHERE api_football_id IS NOT NULL"
    sql += " ORDER BY scout_rank DESC LIMIT ?"
    conn = get_conn()
    try:
        return [_player_from_row(r) for r in conn.execute(sql, (limit,)).fetchall()]
    finally:
        conn.close()


def set_player_api_football_id(player_id: str, api_football_id: int) -> None:
    conn = get_conn()
    try:
        conn.execute("UPDATE players SET api_football_id = ? WHERE id = ?", (api_football_id, player_id))
        conn.commit()
    finally:
        conn.close()


def get_club_api_map() -> dict[str, int]:
    conn = get_conn()
    try:
        rows = conn.execute("SELECT id, api_football_id FROM clubs WHERE api_football_id IS NOT NULL").fetchall()
        return {r["id"]: r["api_football_id"] for r in rows}
    finally:
        conn.close()


def set_club_api_football_id(club_id: str, api_football_id: int) -> None:
    conn = get_conn()
    try:
        conn.execute("UPDATE clubs SET api_football_id = ? WHERE id = ?", (api_football_id, club_id))
        conn.commit()
    finally:
        conn.close()


# -- grid rarity ---------------------------------------------------------------


def record_grid_selection(puzzle_id: str, cell_index: int, player_id: str, player_name: str, nationality_code: str | None = None) -> None:
    if not 0 <= cell_index <= 8:
        raise ValueError(f"cell_index out of range: {cell_index}")
    now = utc_now_iso()
    conn = get_conn()
    try:
        conn.execute(
            """
            INSERT INTO grid_cell_selections
                (puzzle_id, cell_index, player_id, player_name, nationality_code, selection_count, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 1, ?, ?)
            ON CONFLICT(puzzle_id, cell_index, player_id) DO UPDATE SET
                selection_count = grid_cell_selections.selection_count + 1,
                updated_at = excluded.updated_at
            """,
            (puzzle_id, cell_index, player_id, player_name, nationality_code, now, now),
        )
        conn.commit()
    finally:
        conn.close()


def _cell_rarity(conn: sqlite3.Connection, puzzle_id: str, cell_index: int, player_id: str) -> dict:
    total = conn.execute(
        "SELECT COALESCE(SUM(selection_count), 0) FROM grid_cell_selections WHERE puzzle_id = ? AND cell_index = ?",
        (puzzle_id, cell_index),
    ).fetchone()[0]
    if total == 0:
        return {"rarity_pct": 100.0, "selection_count": 1, "total_selections": 1, "rank": 1}
    row = conn.execute(
        "SELECT selection_count FROM grid_cell_selections WHERE puzzle_id = ? AND cell_index = ? AND player_id = ?",
        (puzzle_id, cell_index, player_id),
    ).fetchone()
    if not row:
        return {"rarity_pct": round(1 / (total + 1) * 100, 1), "selection_count": 0, "total_selections": total, "rank": None}
    count = row["selection_count"]
    higher = conn.execute(
        "SELECT COUNT(*) FROM grid_cell_selections WHERE puzzle_id = ? AND cell_index = ? AND selection_count > ?",
        (puzzle_id, cell_index, count),
    ).fetchone()[0]
    return {
        "rarity_pct": round(count / total * 100, 1),
        "selection_count": count,
        "total_selections": total,
        "rank": higher + 1,
    }


def get_grid_cell_rarity(puzzle_id: str, cell_index: int, player_id: str) -> dict:
    conn = get_conn()
    try:
        return _cell_rarity(conn, puzzle_id, cell_index, player_id)
    finally:
        conn.close()


def get_grid_summary_rarity(puzzle_id: str, selections: list[dict]) -> list[dict]:
    """Rarity for each {"cell_index", "player_id"} pick, in the order given."""
    conn = get_conn()
    try:
        return [
            {"cell_index": s["cell_index"], "player_id": s["player_id"], **_cell_rarity(conn, puzzle_id, s["cell_index"], s["player_id"])}
            for s in selections
        ]
    finally:
        conn.close()


# -- reminders, events, save data ---------------------------------------------


def was_reminder_sent(kind: str, for_date: str) -> bool:
    conn = get_conn()
    try:
        row = conn.execute("SELECT 1 FROM reminder_log WHERE kind = ? AND date = ?", (kind, for_date)).fetchone()
        return row is not None
    finally:
        conn.close()


def mark_reminder_sent(kind: str, for_date: str) -> None:
    conn = get_conn()
    try:
        conn.execute(
            "INSERT INTO reminder_log (kind, date, sent_at) VALUES (?, ?, ?) ON CONFLICT(kind, date) DO NOTHING",
            (kind, for_date, utc_now_iso()),
        )
        conn.commit()
    finally:
        conn.close()


def log_event(event_date: str, kind: str, text: str, meta: dict | None = None) -> None:
    conn = get_conn()
    try:
        _insert_event(conn, event_date, kind, text, meta)
        conn.commit()
    finally:
        conn.close()


def recent_events(limit: int = 20) -> list[dict]:
    conn = get_conn()
    try:
        rows = conn.execute("SELECT * FROM event_log ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        out = []
        for r in rows:
            event = dict(r)
            event["meta"] = _parse_json(event.pop("meta_json"), {})
            out.append(event)
        return out
    finally:
        conn.close()


def export_save_data() -> dict:
    conn = get_conn()
    try:
        out = {}
        for table in EXPORT_TABLES:
            out[table] = [dict(r) for r in conn.execute(f"SELECT * FROM {table}").fetchall()]
        for row in out["settings"]:
            row.pop("api_football_key", None)
        return out
    finally:
        conn.close()


def import_save_data(payload: dict) -> None:
    """Replace saved tables from an export. The stored API-Football key is kept."""
    conn = get_conn()
    try:
        key_row = conn.execute("SELECT api_football_key FROM settings WHERE id = 1").fetchone()
        for table in EXPORT_TABLES:
            rows = payload.get(table)
            if rows is None:
                continue
            if table == "settings":
                rows = [{k: v for k, v in row.items() if k != "api_football_key"} for row in rows]
            conn.execute(f"DELETE FROM {table}")
            if not rows:
                continue
            cols = list(rows[0].keys())
            placeholders = ",".join("?" for _ in cols)
            for row in rows:
                conn.execute(f"INSERT INTO {table} ({','.join(cols)}) VALUES ({placeholders})", tuple(row[c] for c in cols))
        if key_row:
            conn.execute("UPDATE settings SET api_football_key = ? WHERE id = 1", (key_row["api_football_key"],))
        conn.commit()
    finally:
        conn.close()


# -- grid pools ----------------------------------------------------------------


def list_clubs() -> list[dict]:
    conn = get_conn()
    try:
        return [dict(r) for r in conn.execute("SELECT id, name, country_code, api_football_id FROM clubs ORDER BY rowid").fetchall()]
    finally:
        conn.close()


def search_clubs(query: str, limit: int = 8) -> list[dict]:
    if not query or len(query.strip()) < 2:
        return []
    conn = get_conn()
    try:
        rows = conn.execute("SELECT id, name FROM clubs WHERE name LIKE ? ORDER BY name LIMIT ?", (f"%{query.strip()}%", limit)).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def find_club_by_name(name: str) -> dict | None:
    conn = get_conn()
    try:
        row = conn.execute("SELECT id, name FROM clubs WHERE name LIKE ? ORDER BY rowid LIMIT 1", (f"%{name}%",)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def list_club_player_ids(club_id: str) -> list[str]:
    conn = get_conn()
    try:
        rows = conn.execute("SELECT DISTINCT player_id FROM player_appearances WHERE club_id = ?", (club_id,)).fetchall()
        return [r["player_id"] for r in rows]
    finally:
        conn.close()


def list_player_ids_by_nationality(code: str) -> list[str]:
    conn = get_conn()
    try:
        return [r["id"] for r in conn.execute("SELECT id FROM players WHERE nationality_code = ?", (code,)).fetchall()]
    finally:
        conn.close()


def load_stats_cache_map() -> dict[str, dict]:
    """Player id to stats_cache, for players with a non-empty cache."""
    conn = get_conn()
    try:
        rows = conn.execute("SELECT id, stats_cache_json FROM players WHERE stats_cache_json IS NOT NULL").fetchall()
    finally:
        conn.close()
    out = {}
    for row in rows:
        cache = _parse_json(row["stats_cache_json"], {})
        if isinstance(cache, dict) and cache:
            out[row["id"]] = cache
    return out


def get_players_by_ids(player_ids: list[str]) -> list[dict]:
    if not player_ids:
        return []
    placeholders = ",".join("?" for _ in player_ids)
    conn = get_conn()
    try:
        rows = conn.execute(f"SELECT * FROM players WHERE id IN ({placeholders})", list(player_ids)).fetchall()
        return [_player_from_row(r) for r in rows]
    finally:
        conn.close()


def count_players_per_club() -> dict[str, int]:
    conn = get_conn()
    try:
        rows = conn.execute("SELECT club_id, COUNT(DISTINCT player_id) AS n FROM player_appearances GROUP BY club_id").fetchall()
        return {r["club_id"]: r["n"] for r in rows}
    finally:
        conn.close()


def count_players_per_nationality() -> list[tuple[str, int]]:
    conn = get_conn()
    try:
        rows = conn.execute(
            """
            SELECT nationality_code, COUNT(*) AS n FROM players
            WHERE nationality_code IS NOT NULL
            GROUP BY nationality_code ORDER BY n DESC, nationality_code
            """
        ).fetchall()
        return [(r["nationality_code"], r["n"]) for r in rows]
    finally:
        conn.close()


def delete_orphan_clubs() -> tuple[list[str], int]:
    """Delete clubs with no appearances. Returns (deleted names, remaining count)."""
    conn = get_conn()
    try:
        orphans = conn.execute(
            "SELECT id, name FROM clubs WHERE id NOT IN (SELECT DISTINCT club_id FROM player_appearances) ORDER BY rowid"
        ).fetchall()
        if orphans:
            conn.executemany("DELETE FROM clubs WHERE id = ?", [(r["id"],) for r in orphans])
            conn.commit()
        remaining = conn.execute("SELECT COUNT(*) FROM clubs").fetchone()[0]
        return [r["name"] for r in orphans], remaining
    finally:
        conn.close()
