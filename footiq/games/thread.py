"""The Thread: name the club from its chain of kit sponsors or suppliers.

Some brands in the path start hidden; revealing them costs points.
"""
from __future__ import annotations

from footiq.scoring import calculate_thread_score
from footiq.validation import validate_guess

PLAYING = "playing"
WON = "won"
LOST = "lost"
REVEALED = "revealed"


def initial_state() -> dict:
    return {
        "guesses": [],
        "game_status": PLAYING,
        "score": None,
        "last_guess_incorrect": False,
        "attempt_id": None,
        "attempt_saved": False,
        "started_at": None,
        "hints_revealed": 0,
    }


def check_guess(club: dict, content: dict) -> bool:
    if club.get("id") and club["id"] == content["correct_club_id"]:
        return True
    return validate_guess(club.get("name", ""), content["correct_club_name"])["is_match"]


def hidden_count(content: dict) -> int:
    return sum(1 for brand in content["path"] if brand.get("is_hidden"))


def can_reveal_hint(state: dict, content: dict) -> bool:
    return state["game_status"] == PLAYING and state["hints_revealed"] < hidden_count(content)


def visible_brands(state: dict, content: dict) -> list[dict]:
    """Path with hidden brands masked, except the first N revealed in path order."""
    out = []
    revealed = 0
    finished = state["game_status"] != PLAYING
    for brand in content["path"]:
        shown = dict(brand)
        if brand.get("is_hidden"):
            if finished or revealed < state["hints_revealed"]:
                shown["is_hidden"] = False
            else:
                shown["brand_name"] = None
            revealed += 1
        out.append(shown)
    return out


def reduce(state: dict, action: dict) -> dict:
    kind = action["type"]

    if kind == "SUBMIT_GUESS":
        guesses = state["guesses"] + [action["club"]]
        if action["is_correct"]:
            return {
                **state,
                "guesses": guesses,
                "game_status": WON,
                "score": calculate_thread_score(len(guesses), True, state["hints_revealed"]),
                "last_guess_incorrect": False,
            }
        return {**state, "guesses": guesses, "last_guess_incorrect": True}

    if kind == "GIVE_UP":
        return {
            **state,
            "game_status": REVEALED,
            "score": calculate_thread_score(len(state["guesses"]), False, state["hints_revealed"]),
        }

    if kind == "REVEAL_HINT":
        return {**state, "hints_revealed": state["hints_revealed"] + 1}

    if kind == "CLEAR_SHAKE":
        return {**state, "last_guess_incorrect": False}

    if kind == "SET_ATTEMPT_ID":
        return {**state, "attempt_id": action["attempt_id"]}

    if kind == "RESTORE_PROGRESS":
        return {
            **state,
            "guesses": list(action.get("guesses") or []),
            "attempt_id": action.get("attempt_id"),
            "started_at": action.get("started_at"),
            "hints_revealed": action.get("hints_revealed") or 0,
        }

    if kind == "ATTEMPT_SAVED":
        return {**state, "attempt_saved": True}

    if kind == "RESET":
        return initial_state()

    return state


def build_metadata(state: dict, content: dict) -> dict:
    meta = {
        "guesses": [{"id": g.get("id"), "name": g.get("name")} for g in state["guesses"]],
        "guess_count": len(state["guesses"]),
        "won": state["game_status"] == WON,
        "thread_type": content["thread_type"],
        "hints_revealed": state["hints_revealed"],
    }
    if state["game_status"] == REVEALED:
        meta["gave_up"] = True
    return meta
