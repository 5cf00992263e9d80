"""Game sessions: today's puzzle, the player's attempt, and moves applied through the reducers.

The full reducer state is stored in the attempt's metadata under "state" next
to the summary fields the stats module reads, so a session can be resumed
after a restart.
"""
from __future__ import annotations

import logging
import random

from footiq import db
from footiq.achievements import COUNTRY_NAME_TO_CODE, check_stat_match, check_trophy_match
from footiq.content import stable_seed
from footiq.games import grid, thread, tictactoe, topical_quiz
from footiq.scoring import calculate_grid_iq, format_thread_score, grid_iq_message, thread_share_text
from footiq.validation import normalize_string

logger = logging.getLogger(__name__)

REDUCERS = {
    "the_thread": thread,
    "tic_tac_toe": tictactoe,
    "topical_quiz": topical_quiz,
    "the_grid": grid,
}

SAVED_ACTION = {
    "the_thread": "ATTEMPT_SAVED",
    "tic_tac_toe": "ATTEMPT_SAVED",
    "topical_quiz": "ATTEMPT_SAVED",
    "the_grid": "MARK_ATTEMPT_SAVED",
}


class GameActionError(ValueError):
    pass


def _is_finished(game_mode: str, state: dict) -> bool:
    if game_mode == "topical_quiz":
        return state["game_status"] == topical_quiz.COMPLETE
    return state["game_status"] != "playing"


def _metadata(game_mode: str, state: dict, content: dict) -> dict:
    if game_mode == "the_thread":
        summary = thread.build_metadata(state, content)
    else:
        summary = REDUCERS[game_mode].build_metadata(state)
    return {**summary, "state": state}


def _score_display(game_mode: str, score: dict) -> str:
    if game_mode == "the_thread":
        return format_thread_score(score)
    return f"{score['points']}/{score['max_points']}"


def _live_puzzle(game_mode: str, for_date: str | None) -> dict:
    if game_mode not in REDUCERS:
        raise GameActionError(f"Unknown game mode {game_mode!r}")
    puzzle_date = for_date or db.get_app_today()
    puzzle = db.get_puzzle_for_date(game_mode, puzzle_date)
    if not puzzle:
        raise db.PuzzleNotFoundError(f"No live {game_mode} puzzle for {puzzle_date}")
    return puzzle


def _load(game_mode: str, for_date: str | None) -> tuple[dict, dict, dict]:
    puzzle = _live_puzzle(game_mode, for_date)
    attempt = db.get_attempt_for_puzzle(puzzle["id"])
    if attempt and attempt["metadata"].get("state"):
        return puzzle, attempt, attempt["metadata"]["state"]

    module = REDUCERS[game_mode]
    state = module.initial_state()
    if attempt is None:
        attempt = db.start_attempt(puzzle["id"])
        logger.info("Started %s attempt %s for %s", game_mode, attempt["id"], puzzle["puzzle_date"])
    if "attempt_id" in state:
        state = module.reduce(state, {"type": "SET_ATTEMPT_ID", "attempt_id": attempt["id"]})
    state = {**state, "started_at": attempt["started_at"]} if "started_at" in state else state
    db.save_attempt_progress(attempt["id"], _metadata(game_mode, state, puzzle["content"]))
    return puzzle, attempt, state


def _persist(game_mode: str, puzzle: dict, attempt: dict, state: dict) -> dict:
    """Store progress; on the first finished state, complete the attempt once."""
    content = puzzle["content"]
    if _is_finished(game_mode, state) and not state["attempt_saved"]:
        state = REDUCERS[game_mode].reduce(state, {"type": SAVED_ACTION[game_mode]})
        score = state["score"]
        saved = db.complete_attempt(attempt["id"], score["points"], _score_display(game_mode, score), _metadata(game_mode, state, content))
        if saved:
            logger.info("Completed %s attempt %s with %s points", game_mode, attempt["id"], score["points"])
    elif not _is_finished(game_mode, state):
        db.save_attempt_progress(attempt["id"], _metadata(game_mode, state, content))
    return state


def _require_playing(game_mode: str, state: dict) -> None:
    if _is_finished(game_mode, state):
        raise GameActionError("This game is already finished")


def _public_content(game_mode: str, content: dict, state: dict) -> dict:
    finished = _is_finished(game_mode, state)
    if game_mode == "the_thread":
        out = {"thread_type": content["thread_type"], "path": thread.visible_brands(state, content)}
        if finished:
            out["correct_club_name"] = content["correct_club_name"]
            out["kit_lore"] = content["kit_lore"]
        return out
    if game_mode == "tic_tac_toe":
        return {"rows": content["rows"], "columns": content["columns"]}
    if game_mode == "topical_quiz":
        answered = {a["question_index"] for a in state["answers"]}
        questions = []
        for index, question in enumerate(content["questions"]):
            shown = {k: v for k, v in question.items() if k != "correct_index"}
            if finished or index in answered:
                shown["correct_index"] = question["correct_index"]
            questions.append(shown)
        return {"questions": questions}
    out = {"xAxis": content["xAxis"], "yAxis": content["yAxis"]}
    for key in ("title", "description"):
        if content.get(key):
            out[key] = content[key]
    return out


def _view(game_mode: str, puzzle: dict, attempt: dict, state: dict) -> dict:
    out = {
        "game_mode": game_mode,
        "puzzle_id": puzzle["id"],
        "puzzle_date": puzzle["puzzle_date"],
        "attempt_id": attempt["id"],
        "content": _public_content(game_mode, puzzle["content"], state),
        "state": state,
        "finished": _is_finished(game_mode, state),
    }
    if out["finished"] and state["score"]:
        out["score_display"] = _score_display(game_mode, state["score"])
        if game_mode == "the_thread":
            out["share_text"] = thread_share_text(state["score"], puzzle["puzzle_date"], puzzle["content"]["thread_type"])
        if game_mode == "the_grid":
            grid_iq = calculate_grid_iq(state["cells"])
            out["grid_iq"] = grid_iq
            out["grid_iq_message"] = grid_iq_message(grid_iq)
    return out


def get_session(game_mode: str, for_date: str | None = None) -> dict:
    puzzle, attempt, state = _load(game_mode, for_date)
    return _view(game_mode, puzzle, attempt, state)


# -- The Thread ----------------------------------------------------------------


def thread_guess(club: dict, for_date: str | None = None) -> dict:
    puzzle, attempt, state = _load("the_thread", for_date)
    _require_playing("the_thread", state)
    if not (club.get("id") or (club.get("name") or "").strip()):
        raise GameActionError("A club id or name is required")
    is_correct = thread.check_guess(club, puzzle["content"])
    state = thread.reduce(state, {"type": "SUBMIT_GUESS", "club": club, "is_correct": is_correct})
    state = _persist("the_thread", puzzle, attempt, state)
    return {**_view("the_thread", puzzle, attempt, state), "is_correct": is_correct}


def thread_reveal_hint(for_date: str | None = None) -> dict:
    puzzle, attempt, state = _load("the_thread", for_date)
    if not thread.can_reveal_hint(state, puzzle["content"]):
        raise GameActionError("No hints left to reveal")
    state = thread.reduce(state, {"type": "REVEAL_HINT"})
    state = _persist("the_thread", puzzle, attempt, state)
    return _view("the_thread", puzzle, attempt, state)


def thread_give_up(for_date: str | None = None) -> dict:
    puzzle, attempt, state = _load("the_thread", for_date)
    _require_playing("the_thread", state)
    state = thread.reduce(state, {"type": "GIVE_UP"})
    state = _persist("the_thread", puzzle, attempt, state)
    return _view("the_thread", puzzle, attempt, state)


# -- Tic-Tac-Toe ---------------------------------------------------------------


def tictactoe_move(cell_index: int, guess: str, for_date: str | None = None) -> dict:
    puzzle, attempt, state = _load("tic_tac_toe", for_date)
    _require_playing("tic_tac_toe", state)
    if not grid.is_valid_cell_index(cell_index):
        raise GameActionError(f"cell_index must be 0-8, got {cell_index!r}")
    if state["cells"][cell_index]["owner"] is not None:
        raise GameActionError("That cell is already claimed")
    move_no = 9 - len(tictactoe.get_empty_cells(state["cells"]))
    rng = random.Random(stable_seed(attempt["id"], str(move_no)))
    state, result = tictactoe.play_turn(state, puzzle["content"], cell_index, guess, rng)
    state = _persist("tic_tac_toe", puzzle, attempt, state)
    return {**_view("tic_tac_toe", puzzle, attempt, state), "is_valid": result["is_valid"], "matched_player": result["matched_player"]}


# -- Topical Quiz --------------------------------------------------------------


def quiz_answer(selected_index: int, for_date: str | None = None) -> dict:
    puzzle, attempt, state = _load("topical_quiz", for_date)
    _require_playing("topical_quiz", state)
    if not isinstance(selected_index, int) or not 0 <= selected_index <= 3:
        raise GameActionError(f"selected_index must be 0-3, got {selected_index!r}")
    before = len(state["answers"])
    state = topical_quiz.answer_question(state, puzzle["content"], selected_index)
    is_correct = None
    if len(state["answers"]) > before:
        is_correct = state["answers"][-1]["is_correct"]
        if state["current_question_index"] >= len(puzzle["content"]["questions"]) - 1:
            state = topical_quiz.advance(state)
    state = _persist("topical_quiz", puzzle, attempt, state)
    return {**_view("topical_quiz", puzzle, attempt, state), "is_correct": is_correct}


def quiz_next(for_date: str | None = None) -> dict:
    puzzle, attempt, state = _load("topical_quiz", for_date)
    state = topical_quiz.advance(state)
    state = _persist("topical_quiz", puzzle, attempt, state)
    return _view("topical_quiz", puzzle, attempt, state)


# -- The Grid ------------------------------------------------------------------


def player_matches_category(player: dict, category: dict) -> bool:
    kind, value = category["type"], category["value"]
    if kind == "club":
        return db.player_played_for(player["id"], value)
    if kind == "nation":
        code = COUNTRY_NAME_TO_CODE.get(value)
        return code is not None and player.get("nationality_code") == code
    if kind == "trophy":
        return check_trophy_match(value, player.get("stats_cache") or {})
    if kind == "stat":
        return check_stat_match(value, player.get("stats_cache") or {})
    logger.warning("Unknown grid category type: %r", kind)
    return False


def _resolve_grid_pick(cell_index: int, content: dict, player_id: str | None, guess: str | None) -> dict | None:
    categories = grid.get_cell_categories(cell_index, content)
    if player_id:
        player = db.get_player_by_id(player_id)
        if not player:
            return None
        if player_matches_category(player, categories["row"]) and player_matches_category(player, categories["col"]):
            return {"player": player["name"], "player_id": player["id"], "nationality_code": player.get("nationality_code")}
        return None

    result = grid.validate_cell_guess(guess or "", cell_index, content)
    if not result["is_valid"]:
        return None
    name = result["matched_player"]
    known = [p for p in db.search_players(name, limit=5) if normalize_string(p["name"]) == normalize_string(name)]
    if known:
        return {"player": known[0]["name"], "player_id": known[0]["id"], "nationality_code": known[0].get("nationality_code")}
    return {"player": name, "player_id": f"name:{normalize_string(name)}", "nationality_code": None}


def grid_guess(cell_index: int, player_id: str | None = None, guess: str | None = None, for_date: str | None = None) -> dict:
    puzzle, attempt, state = _load("the_grid", for_date)
    _require_playing("the_grid", state)
    if not grid.is_valid_cell_index(cell_index):
        raise GameActionError(f"cell_index must be 0-8, got {cell_index!r}")
    if state["cells"][cell_index] is not None:
        raise GameActionError("That cell is already filled")
    if not player_id and not (guess or "").strip():
        raise GameActionError("A player_id or guess is required")

    state = grid.reduce(state, {"type": "SELECT_CELL", "cell_index": cell_index})
    pick = _resolve_grid_pick(cell_index, puzzle["content"], player_id, guess)
    if pick is None:
        state = grid.reduce(state, {"type": "INCORRECT_GUESS"})
        state = _persist("the_grid", puzzle, attempt, state)
        return {**_view("the_grid", puzzle, attempt, state), "is_correct": False}

    state = grid.reduce(state, {"type": "CORRECT_GUESS", "cell_index": cell_index, **pick})
    state = grid.reduce(state, {"type": "SET_RARITY_LOADING", "cell_index": cell_index})
    db.record_grid_selection(puzzle["id"], cell_index, pick["player_id"], pick["player"], pick["nationality_code"])
    rarity = db.get_grid_cell_rarity(puzzle["id"], cell_index, pick["player_id"])
    state = grid.reduce(state, {"type": "SET_CELL_RARITY", "cell_index": cell_index, "rarity_pct": rarity["rarity_pct"]})
    state = grid.complete_if_full(state)
    state = _persist("the_grid", puzzle, attempt, state)
    return {**_view("the_grid", puzzle, attempt, state), "is_correct": True, "rarity": rarity}


def grid_give_up(for_date: str | None = None) -> dict:
    puzzle, attempt, state = _load("the_grid", for_date)
    _require_playing("the_grid", state)
    state = grid.give_up(state)
    state = _persist("the_grid", puzzle, attempt, state)
    return _view("the_grid", puzzle, attempt, state)


def grid_summary_rarity(for_date: str | None = None) -> list[dict]:
    puzzle, _, state = _load("the_grid", for_date)
    picks = [{"cell_index": i, "player_id": cell["player_id"]} for i, cell in enumerate(state["cells"]) if cell]
    return db.get_grid_summary_rarity(puzzle["id"], picks)
