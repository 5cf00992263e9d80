"""Tic-Tac-Toe against a random AI on a 3x3 grid of category intersections.

Claiming a cell requires naming a player who fits both the row and the
column category.
"""
from __future__ import annotations

import random

from footiq.scoring import calculate_tic_tac_toe_score
from footiq.validation import validate_guess

PLAYING = "playing"
WON = "won"
LOST = "lost"
DRAW = "draw"

AI_FALLBACK_NAME = "AI Player"

WINNING_COMBINATIONS = [
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
]


def create_empty_cells() -> list[dict]:
    return [{"owner": None, "player_name": None} for _ in range(9)]


def initial_state() -> dict:
    return {
        "cells": create_empty_cells(),
        "selected_cell": None,
        "current_guess": "",
        "game_status": PLAYING,
        "current_turn": "player",
        "winner": None,
        "winning_line": None,
        "score": None,
        "attempt_id": None,
        "attempt_saved": False,
        "started_at": None,
        "last_guess_incorrect": False,
    }


def check_win(cells: list[dict], owner: str) -> list[int] | None:
    for line in WINNING_COMBINATIONS:
        if all(cells[i]["owner"] == owner for i in line):
            return list(line)
    return None


def check_draw(cells: list[dict]) -> bool:
    if any(cell["owner"] is None for cell in cells):
        return False
    return not check_win(cells, "player") and not check_win(cells, "ai")


def get_empty_cells(cells: list[dict]) -> list[int]:
    return [i for i, cell in enumerate(cells) if cell["owner"] is None]


def pick_random_empty_cell(cells: list[dict], rng: random.Random) -> int | None:
    empty = get_empty_cells(cells)
    if not empty:
        return None
    return rng.choice(empty)


def pick_random_player_for_cell(cell_index: int, content: dict, rng: random.Random) -> str:
    answers = content["valid_answers"].get(str(cell_index)) or []
    if not answers:
        return AI_FALLBACK_NAME
    return rng.choice(answers)


def pick_ai_move(cells: list[dict], content: dict, rng: random.Random) -> tuple[int | None, str | None]:
    cell_index = pick_random_empty_cell(cells, rng)
    if cell_index is None:
        return None, None
    return cell_index, pick_random_player_for_cell(cell_index, content, rng)


def get_cell_categories(cell_index: int, content: dict) -> dict:
    return {"row": content["rows"][cell_index // 3], "column": content["columns"][cell_index % 3]}


def validate_cell_guess(guess: str, cell_index: int, content: dict) -> dict:
    best_player = None
    best_score = 0.0
    if guess and guess.strip():
        for answer in content["valid_answers"].get(str(cell_index)) or []:
            result = validate_guess(guess, answer)
            if result["is_match"] and result["score"] > best_score:
                best_player, best_score = answer, result["score"]
                if best_score >= 1.0:
                    break
    return {"is_valid": best_player is not None, "matched_player": best_player, "score": best_score}


def _place(cells: list[dict], cell_index: int, owner: str, player_name: str) -> list[dict]:
    out = [dict(cell) for cell in cells]
    out[cell_index] = {"owner": owner, "player_name": player_name}
    return out


def reduce(state: dict, action: dict) -> dict:
    kind = action["type"]

    if kind == "SELECT_CELL":
        index = action["cell_index"]
        if state["game_status"] != PLAYING or state["current_turn"] != "player" or state["cells"][index]["owner"] is not None:
            return state
        return {**state, "selected_cell": index, "current_guess": "", "last_guess_incorrect": False}

    if kind == "DESELECT_CELL":
        return {**state, "selected_cell": None, "current_guess": "", "last_guess_incorrect": False}

    if kind == "SET_CURRENT_GUESS":
        return {**state, "current_guess": action["guess"]}

    if kind == "CORRECT_GUESS":
        return {
            **state,
            "cells": _place(state["cells"], action["cell_index"], "player", action["player_name"]),
            "selected_cell": None,
            "current_guess": "",
            "last_guess_incorrect": False,
            "current_turn": "ai",
        }

    if kind == "INCORRECT_GUESS":
        return {**state, "current_guess": "", "last_guess_incorrect": True}

    if kind == "CLEAR_SHAKE":
        return {**state, "last_guess_incorrect": False}

    if kind == "AI_MOVE":
        return {
            **state,
            "cells": _place(state["cells"], action["cell_index"], "ai", action["player_name"]),
            "current_turn": "player",
        }

    if kind == "GAME_WON":
        return {**state, "game_status": WON, "winning_line": action["winning_line"], "winner": "player", "score": action["score"]}

    if kind == "GAME_LOST":
        return {**state, "game_status": LOST, "winning_line": action["winning_line"], "winner": "ai", "score": action["score"]}

    if kind == "GAME_DRAW":
        return {**state, "game_status": DRAW, "winner": None, "score": action["score"]}

    if kind == "ATTEMPT_SAVED":
        return {**state, "attempt_saved": True}

    if kind == "RESET":
        return initial_state()

    if kind == "SET_ATTEMPT_ID":
        return {**state, "attempt_id": action["attempt_id"]}

    if kind == "RESTORE_PROGRESS":
        return {
            **state,
            "cells": action["cells"],
            "current_turn": action["current_turn"],
            "attempt_id": action.get("attempt_id"),
            "started_at": action.get("started_at"),
        }

    return state


def _settle(state: dict, mover: str) -> dict:
    line = check_win(state["cells"], mover)
    if line:
        if mover == "player":
            return reduce(state, {"type": "GAME_WON", "winning_line": line, "score": calculate_tic_tac_toe_score("win", state["cells"])})
        return reduce(state, {"type": "GAME_LOST", "winning_line": line, "score": calculate_tic_tac_toe_score("loss", state["cells"])})
    if check_draw(state["cells"]):
        return reduce(state, {"type": "GAME_DRAW", "score": calculate_tic_tac_toe_score("draw", state["cells"])})
    return state


def play_turn(state: dict, content: dict, cell_index: int, guess: str, rng: random.Random) -> tuple[dict, dict]:
    """Run one player turn: validate, claim, then let the AI answer.

    Returns the new state and the guess validation result.
    """
    state = reduce(state, {"type": "SELECT_CELL", "cell_index": cell_index})
    if state["selected_cell"] != cell_index:
        return state, {"is_valid": False, "matched_player": None, "score": 0.0}

    result = validate_cell_guess(guess, cell_index, content)
    if not result["is_valid"]:
        return reduce(state, {"type": "INCORRECT_GUESS"}), result

    state = reduce(state, {"type": "CORRECT_GUESS", "cell_index": cell_index, "player_name": result["matched_player"]})
    state = _settle(state, "player")
    if state["game_status"] != PLAYING:
        return state, result

    ai_cell, ai_player = pick_ai_move(state["cells"], content, rng)
    if ai_cell is None:
        return state, result
    state = reduce(state, {"type": "AI_MOVE", "cell_index": ai_cell, "player_name": ai_player})
    return _settle(state, "ai"), result


def build_metadata(state: dict) -> dict:
    if state["game_status"] == PLAYING:
        return {"cells": state["cells"], "current_turn": state["current_turn"]}
    score = state["score"] or {}
    return {
        "cells": state["cells"],
        "result": score.get("result"),
        "player_cells": score.get("player_cells", 0),
        "ai_cells": score.get("ai_cells", 0),
        "winning_line": state["winning_line"],
    }
