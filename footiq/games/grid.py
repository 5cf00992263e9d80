"""The Grid: fill a 3x3 board where each cell crosses a row and a column category.

Categories are clubs, nations, trophies or stat thresholds. Cells are
validated either against curated answer lists or the player database.
"""
from __future__ import annotations

from footiq.scoring import GRID_CELLS, calculate_grid_score
from footiq.validation import validate_guess

PLAYING = "playing"
COMPLETE = "complete"
GAVE_UP = "gave_up"


def initial_state() -> dict:
    return {
        "cells": [None] * GRID_CELLS,
        "selected_cell": None,
        "current_guess": "",
        "game_status": PLAYING,
        "score": None,
        "attempt_id": None,
        "attempt_saved": False,
        "last_guess_incorrect": False,
    }


def get_cell_categories(cell_index: int, content: dict) -> dict:
    return {"row": content["yAxis"][cell_index // 3], "col": content["xAxis"][cell_index % 3]}


def is_valid_cell_index(index) -> bool:
    return isinstance(index, int) and not isinstance(index, bool) and 0 <= index <= 8


def get_empty_cells(cells: list) -> list[int]:
    return [i for i, cell in enumerate(cells) if cell is None]


def count_filled_cells(cells: list) -> int:
    return sum(1 for cell in cells if cell is not None)


def is_grid_complete(cells: list) -> bool:
    return count_filled_cells(cells) == GRID_CELLS


def validate_cell_guess(guess: str, cell_index: int, content: dict) -> dict:
    answers = (content.get("valid_answers") or {}).get(str(cell_index)) or []
    trimmed = (guess or "").strip()
    if trimmed:
        for answer in answers:
            if validate_guess(trimmed, answer)["is_match"]:
                return {"is_valid": True, "matched_player": answer}
    return {"is_valid": False, "matched_player": None}


def _update_cell(cells: list, index: int, **changes) -> list:
    out = list(cells)
    if out[index] is not None:
        out[index] = {**out[index], **changes}
    return out


def reduce(state: dict, action: dict) -> dict:
    kind = action["type"]

    if kind == "SELECT_CELL":
        index = action["cell_index"]
        if state["game_status"] != PLAYING or state["cells"][index] is not None:
            return state
        return {**state, "selected_cell": index, "current_guess": "", "last_guess_incorrect": False}

    if kind == "DESELECT_CELL":
        return {**state, "selected_cell": None, "current_guess": "", "last_guess_incorrect": False}

    if kind == "SET_CURRENT_GUESS":
        return {**state, "current_guess": action["guess"], "last_guess_incorrect": False}

    if kind == "CORRECT_GUESS":
        cells = list(state["cells"])
        cells[action["cell_index"]] = {
            "player": action["player"],
            "player_id": action.get("player_id"),
            "nationality_code": action.get("nationality_code"),
            "rarity_pct": None,
            "rarity_loading": False,
        }
        return {**state, "cells": cells, "selected_cell": None, "current_guess": "", "last_guess_incorrect": False}

    if kind == "INCORRECT_GUESS":
        return {**state, "last_guess_incorrect": True}

    if kind == "CLEAR_INCORRECT":
        return {**state, "last_guess_incorrect": False}

    if kind == "SET_CELL_RARITY":
        cells = _update_cell(state["cells"], action["cell_index"], rarity_pct=action["rarity_pct"], rarity_loading=False)
        return {**state, "cells": cells}

    if kind == "SET_RARITY_LOADING":
        return {**state, "cells": _update_cell(state["cells"], action["cell_index"], rarity_loading=True)}

    if kind == "GAME_COMPLETE":
        return {**state, "game_status": COMPLETE, "score": action["score"], "selected_cell": None, "current_guess": ""}

    if kind == "GIVE_UP":
        return {**state, "game_status": GAVE_UP, "score": action["score"], "selected_cell": None, "current_guess": ""}

    if kind == "SET_ATTEMPT_ID":
        return {**state, "attempt_id": action["attempt_id"]}

    if kind == "RESTORE_PROGRESS":
        return {**state, "cells": action["cells"], "attempt_id": action.get("attempt_id")}

    if kind == "MARK_ATTEMPT_SAVED":
        return {**state, "attempt_saved": True}

    if kind == "RESET_GAME":
        return initial_state()

    return state


def complete_if_full(state: dict) -> dict:
    if state["game_status"] == PLAYING and is_grid_complete(state["cells"]):
        return reduce(state, {"type": "GAME_COMPLETE", "score": calculate_grid_score(GRID_CELLS)})
    return state


def give_up(state: dict) -> dict:
    if state["game_status"] != PLAYING:
        return state
    return reduce(state, {"type": "GIVE_UP", "score": calculate_grid_score(count_filled_cells(state["cells"]))})


def build_metadata(state: dict) -> dict:
    meta = {"cells_filled": count_filled_cells(state["cells"]), "cells": state["cells"]}
    if state["game_status"] == GAVE_UP:
        meta["gave_up"] = True
    return meta
