from __future__ import annotations

import logging
import random
from datetime import date, timedelta
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from footiq import db, grid_sandbox, play
from footiq.content import seed_from_pack
from footiq.schemas import GAME_MODES, ContentValidationError, validate_puzzle
from footiq.stats import MAX_FREEZES, get_mode_distribution, get_user_stats

logger = logging.getLogger(__name__)

app = FastAPI(title="Football IQ")


@app.on_event("startup")
def startup() -> None:
    db.init_db()
    seed_from_pack(db.get_app_today())


@app.exception_handler(db.PuzzleNotFoundError)
def puzzle_not_found(request: Request, exc: db.PuzzleNotFoundError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=404)


@app.exception_handler(play.GameActionError)
def game_action_failed(request: Request, exc: play.GameActionError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=422)


@app.exception_handler(ContentValidationError)
def content_invalid(request: Request, exc: ContentValidationError) -> JSONResponse:
    return JSONResponse({"detail": str(exc), "game_mode": exc.game_mode, "issues": exc.issues}, status_code=422)


@app.exception_handler(db.DuplicatePuzzleError)
def puzzle_exists(request: Request, exc: db.DuplicatePuzzleError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=409)


@app.exception_handler(db.NoStreakFreezesError)
def no_streak_freezes(request: Request, exc: db.NoStreakFreezesError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=409)


# -- request bodies ------------------------------------------------------------


class ThreadGuess(BaseModel):
    club_id: Optional[str] = None
    club_name: Optional[str] = None


class CellMove(BaseModel):
    cell_index: int
    guess: str


class QuizAnswer(BaseModel):
    selected_index: int


class GridGuess(BaseModel):
    cell_index: int
    player_id: Optional[str] = None
    guess: Optional[str] = None


class SettingsUpdate(BaseModel):
    display_name: str
    day_timezone: str = "Europe/London"
    testing_mode: bool = False
    discord_webhook_url: str = ""
    ntfy_topic_url: str = ""
    api_football_key: Optional[str] = None


class StreakFreeze(BaseModel):
    date: Optional[str] = None


class CellCategories(BaseModel):
    category_a: dict
    category_b: dict


class CellCheck(CellCategories):
    player_qid: str


class GenerateGrid(BaseModel):
    mode: str = "mixed"
    seed: Optional[int] = None


class ManualGrid(BaseModel):
    xAxis: list[dict]
    yAxis: list[dict]


class PublishGrid(BaseModel):
    grid: dict
    date: str
    title: Optional[str] = None
    description: Optional[str] = None


# -- puzzles and games ---------------------------------------------------------


@app.get("/health")
def health() -> dict:
    return {"ok": True, "today": db.get_app_today()}


@app.get("/puzzles/today")
def puzzles_today() -> dict:
    today = db.get_app_today()
    out = []
    for mode in GAME_MODES:
        puzzle = db.get_puzzle_for_date(mode, today)
        if not puzzle:
            out.append({"game_mode": mode, "available": False})
            continue
        attempt = db.get_attempt_for_puzzle(puzzle["id"])
        status = "not_started"
        if attempt:
            status = "completed" if attempt["completed"] else "in_progress"
        out.append(
            {
                "game_mode": mode,
                "available": True,
                "puzzle_id": puzzle["id"],
                "difficulty": puzzle["difficulty"],
                "status": status,
                "score_display": attempt["score_display"] if attempt else None,
            }
        )
    return {"date": today, "puzzles": out}


@app.get("/games/{game_mode}")
def game_session(game_mode: str) -> dict:
    return play.get_session(game_mode)


@app.post("/games/the_thread/guess")
def thread_guess(body: ThreadGuess) -> dict:
    return play.thread_guess({"id": body.club_id, "name": body.club_name})


@app.post("/games/the_thread/hint")
def thread_hint() -> dict:
    return play.thread_reveal_hint()


@app.post("/games/the_thread/give-up")
def thread_give_up() -> dict:
    return play.thread_give_up()


@app.post("/games/tic_tac_toe/move")
def tictactoe_move(body: CellMove) -> dict:
    return play.tictactoe_move(body.cell_index, body.guess)


@app.post("/games/topical_quiz/answer")
def quiz_answer(body: QuizAnswer) -> dict:
    return play.quiz_answer(body.selected_index)


@app.post("/games/topical_quiz/next")
def quiz_next() -> dict:
    return play.quiz_next()


@app.post("/games/the_grid/guess")
def grid_guess(body: GridGuess) -> dict:
    return play.grid_guess(body.cell_index, player_id=body.player_id, guess=body.guess)


@app.post("/games/the_grid/give-up")
def grid_give_up() -> dict:
    return play.grid_give_up()


@app.get("/games/the_grid/rarity")
def grid_rarity() -> dict:
    return {"cells": play.grid_summary_rarity()}


@app.get("/players/search")
def players_search(q: str = "") -> dict:
    return {"players": [{"id": p["id"], "name": p["name"], "nationality_code": p["nationality_code"]} for p in db.search_players(q)]}


@app.get("/clubs/search")
def clubs_search(q: str = "") -> dict:
    return {"clubs": db.search_clubs(q) if len(q.strip()) >= 2 else []}


# -- stats ---------------------------------------------------------------------


@app.get("/stats")
def stats() -> dict:
    return get_user_stats()


@app.get("/stats/distribution/{game_mode}")
def stats_distribution(game_mode: str, score: Optional[int] = None) -> dict:
    if game_mode not in GAME_MODES:
        raise HTTPException(status_code=404, detail=f"Unknown game mode {game_mode!r}")
    return get_mode_distribution(game_mode, user_score=score)


@app.post("/streak/freeze")
def streak_freeze(body: StreakFreeze) -> dict:
    today = date.fromisoformat(db.get_app_today())
    if body.date is None:
        freeze_date = (today - timedelta(days=1)).isoformat()
    else:
        try:
            parsed = date.fromisoformat(body.date)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Invalid date {body.date!r}, expected YYYY-MM-DD")
        if parsed > today:
            raise HTTPException(status_code=422, detail=f"Cannot freeze {body.date}, it is after today")
        freeze_date = parsed.isoformat()
    added = db.use_streak_freeze(freeze_date)
    if added:
        db.log_event(freeze_date, "streak_freeze", f"Streak freeze used for {freeze_date}.")
    return {"date": freeze_date, "added": added, "available": db.get_available_freezes()}


@app.get("/streak/freezes")
def streak_freezes() -> dict:
    return {"available": db.get_available_freezes(), "max": MAX_FREEZES, "used": db.list_streak_freezes()}


@app.get("/events")
def events(limit: int = 20) -> dict:
    return {"events": db.recent_events(limit)}


# -- settings and testing ------------------------------------------------------


def _public_settings() -> dict:
    settings = db.get_settings()
    settings["testing_mode"] = bool(settings["testing_mode"])
    settings["api_football_key_set"] = bool(settings.pop("api_football_key"))
    return settings


@app.get("/settings")
def get_settings() -> dict:
    return _public_settings()


@app.post("/settings")
def save_settings(body: SettingsUpdate) -> dict:
    db.update_settings(
        display_name=body.display_name,
        day_timezone=body.day_timezone,
        testing_mode=body.testing_mode,
        discord_webhook_url=body.discord_webhook_url,
        ntfy_topic_url=body.ntfy_topic_url,
        api_football_key=body.api_football_key,
    )
    return _public_settings()


@app.post("/testing/advance-day")
def advance_day() -> dict:
    if not db.get_settings()["testing_mode"]:
        raise HTTPException(status_code=403, detail="Testing mode is off")
    new_date = db.testing_advance_day(1)
    seed_from_pack(new_date)
    db.log_event(new_date, "testing", "Advanced the simulated day.")
    return {"today": new_date}


# -- admin ---------------------------------------------------------------------


@app.get("/admin/puzzles")
def admin_list_puzzles(game_mode: Optional[str] = None, start: Optional[str] = None, end: Optional[str] = None) -> dict:
    return {"puzzles": db.list_puzzles(game_mode, start, end)}


@app.post("/admin/puzzles")
def admin_save_puzzle(payload: dict[str, Any], replace: bool = False) -> dict:
    return db.upsert_puzzle(validate_puzzle(payload), replace=replace)


@app.get("/admin/grid-sandbox/players")
def sandbox_players(q: str = "") -> dict:
    return grid_sandbox.search_players(q)


@app.post("/admin/grid-sandbox/validate-cell")
def sandbox_validate_cell(body: CellCheck) -> dict:
    return grid_sandbox.validate_cell(body.player_qid, body.category_a, body.category_b)


@app.post("/admin/grid-sandbox/cell-candidates")
def sandbox_cell_candidates(body: CellCategories) -> dict:
    return grid_sandbox.get_valid_players_for_cell(body.category_a, body.category_b)


@app.post("/admin/grid-sandbox/generate")
def sandbox_generate(body: GenerateGrid) -> dict:
    rng = random.Random(body.seed) if body.seed is not None else None
    return grid_sandbox.generate_grid(body.mode, rng=rng)


@app.post("/admin/grid-sandbox/validate-grid")
def sandbox_validate_grid(body: ManualGrid) -> dict:
    return grid_sandbox.validate_manual_grid(body.xAxis, body.yAxis)


@app.get("/admin/grid-sandbox/clubs")
def sandbox_clubs(q: str = "") -> dict:
    return grid_sandbox.suggest_clubs(q)


@app.post("/admin/grid-sandbox/prune-clubs")
def sandbox_prune_clubs() -> dict:
    return grid_sandbox.prune_orphan_clubs()


@app.get("/admin/grid-sandbox/schedule")
def sandbox_schedule(start: Optional[str] = None, days: int = 7) -> dict:
    return grid_sandbox.get_grid_schedule(start or db.get_app_today(), days)


@app.post("/admin/grid-sandbox/publish")
def sandbox_publish(body: PublishGrid) -> dict:
    return grid_sandbox.publish_grid(body.grid, body.date, title=body.title, description=body.description)


# -- save data -----------------------------------------------------------------


@app.get("/export")
def export_save() -> JSONResponse:
    return JSONResponse(db.export_save_data())


@app.post("/import")
def import_save(payload: dict[str, Any]) -> dict:
    db.import_save_data(payload)
    logger.info("Imported save data (%d tables)", len(payload))
    return {"ok": True}
