from __future__ import annotations

THREAD_MAX_POINTS = 10
THREAD_POINTS_BY_HINTS = [10, 6, 4, 2]
THREAD_HIDDEN_SLOTS = 3
THREAD_LABELS = ["Perfect!", "Great!", "Good!", "Close!"]
THREAD_TYPE_LABELS = {"sponsor": "Kit Sponsor", "supplier": "Kit Supplier"}

TIC_TAC_TOE_POINTS = {"win": 10, "draw": 5, "loss": 0}
TIC_TAC_TOE_MAX_POINTS = 10

QUIZ_TOTAL_QUESTIONS = 5
QUIZ_POINTS_PER_CORRECT = 2
QUIZ_MAX_POINTS = QUIZ_TOTAL_QUESTIONS * QUIZ_POINTS_PER_CORRECT

GRID_CELLS = 9
GRID_MAX_POINTS = 100

GRID_IQ_TIERS = [
    (80, "Elite picks! You know the obscure legends."),
    (60, "Deep cuts! Your knowledge runs deep."),
    (40, "Solid knowledge. A few hidden gems in there."),
    (20, "Playing it safe with the familiar names."),
    (0, "Sticking to the superstars!"),
]

SHARE_FOOTER = "Play at footballiq.app"


def _clamp_hints(hints_revealed: int) -> int:
    return max(0, min(THREAD_HIDDEN_SLOTS, int(hints_revealed or 0)))


def calculate_thread_score(guess_count: int, won: bool, hints_revealed: int = 0) -> dict:
    hints = _clamp_hints(hints_revealed)
    return {
        "points": THREAD_POINTS_BY_HINTS[hints] if won else 0,
        "max_points": THREAD_MAX_POINTS,
        "guess_count": guess_count,
        "won": won,
        "hints_revealed": hints,
    }


def format_thread_score(score: dict) -> str:
    return f"{score['points']}/{score['max_points']}"


def thread_emoji_grid(score: dict) -> str:
    if not score["won"]:
        return "🧵 💀 DNF"
    hints = _clamp_hints(score["hints_revealed"])
    return "🧵 " + "🔓" * hints + "🔒" * (THREAD_HIDDEN_SLOTS - hints) + " " + THREAD_LABELS[hints]


def thread_share_text(score: dict, puzzle_date: str, thread_type: str) -> str:
    label = THREAD_TYPE_LABELS.get(thread_type, "Kit Sponsor")
    return (
        f"Football IQ - Threads ({label})\n{puzzle_date}\n{thread_emoji_grid(score)}\n"
        f"{score['points']}/{score['max_points']} points\n\n{SHARE_FOOTER}"
    )


def count_cells(cells: list[dict]) -> dict:
    return {
        "player": sum(1 for c in cells if c.get("owner") == "player"),
        "ai": sum(1 for c in cells if c.get("owner") == "ai"),
    }


def calculate_tic_tac_toe_score(result: str, cells: list[dict]) -> dict:
    counts = count_cells(cells)
    return {
        "points": TIC_TAC_TOE_POINTS.get(result, 0),
        "max_points": TIC_TAC_TOE_MAX_POINTS,
        "result": result,
        "player_cells": counts["player"],
        "ai_cells": counts["ai"],
    }


def calculate_quiz_score(correct_count: int) -> dict:
    correct = max(0, min(QUIZ_TOTAL_QUESTIONS, correct_count))
    return {
        "points": correct * QUIZ_POINTS_PER_CORRECT,
        "max_points": QUIZ_MAX_POINTS,
        "correct_count": correct,
    }


def calculate_grid_score(cells_filled: int) -> dict:
    filled = max(0, min(GRID_CELLS, cells_filled))
    return {
        "points": round(filled / GRID_CELLS * GRID_MAX_POINTS),
        "max_points": GRID_MAX_POINTS,
        "cells_filled": filled,
    }


def calculate_grid_iq(cells: list[dict | None]) -> int:
    """Rarity-weighted grid IQ: obscure picks (low selection %) score higher."""
    contributions = [
        100 - float(c["rarity_pct"])
        for c in cells
        if c is not None and c.get("rarity_pct") is not None
    ]
    if not contributions:
        return 0
    return round(sum(contributions) / (GRID_CELLS * 100) * 100)


def grid_iq_message(grid_iq: int) -> str:
    for floor, message in GRID_IQ_TIERS:
        if grid_iq >= floor:
            return message
    return GRID_IQ_TIERS[-1][1]
