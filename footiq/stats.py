"""Football IQ profile: per-mode proficiency, weighted global IQ, tiers and streaks."""
from __future__ import annotations

import logging
from datetime import date, timedelta

from footiq import db
from footiq.schemas import GAME_MODES
from footiq.scoring import GRID_CELLS, QUIZ_TOTAL_QUESTIONS, THREAD_MAX_POINTS, calculate_thread_score

logger = logging.getLogger(__name__)

GAME_MODE_DISPLAY = {
    "the_thread": {"display_name": "Threads", "skill_name": "Kit Historian"},
    "tic_tac_toe": {"display_name": "Tic Tac Toe", "skill_name": "Tactical Vision"},
    "topical_quiz": {"display_name": "Topical Quiz", "skill_name": "Current Affairs"},
    "the_grid": {"display_name": "The Grid", "skill_name": "Pattern Recognition"},
}

IQ_WEIGHTS = {
    "the_thread": 0.08,
    "tic_tac_toe": 0.10,
    "topical_quiz": 0.09,
    "the_grid": 0.10,
}

IQ_TIERS = [
    {"tier": 1, "name": "Trialist", "min_points": 0, "max_points": 24},
    {"tier": 2, "name": "Youth Team", "min_points": 25, "max_points": 99},
    {"tier": 3, "name": "Reserve Team", "min_points": 100, "max_points": 249},
    {"tier": 4, "name": "Impact Sub", "min_points": 250, "max_points": 499},
    {"tier": 5, "name": "Rotation Player", "min_points": 500, "max_points": 999},
    {"tier": 6, "name": "First Team Regular", "min_points": 1000, "max_points": 1999},
    {"tier": 7, "name": "Key Player", "min_points": 2000, "max_points": 3999},
    {"tier": 8, "name": "Club Legend", "min_points": 4000, "max_points": 7999},
    {"tier": 9, "name": "National Treasure", "min_points": 8000, "max_points": 19999},
    {"tier": 10, "name": "GOAT", "min_points": 20000, "max_points": None},
]

DISTRIBUTION_BUCKET_SIZE = {"topical_quiz": 20}


def _number(meta: dict, key: str) -> int:
    value = meta.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def normalize_score(game_mode: str, metadata) -> int:
    """Map a completed attempt's metadata onto a 0-100 scale."""
    if not isinstance(metadata, dict):
        logger.debug("normalize_score: invalid metadata for %s", game_mode)
        return 0

    if game_mode == "the_thread":
        score = calculate_thread_score(_number(metadata, "guess_count"), metadata.get("won") is True, _number(metadata, "hints_revealed"))
        return round(score["points"] / THREAD_MAX_POINTS * 100)

    if game_mode == "tic_tac_toe":
        result = metadata.get("result")
        if result == "win":
            return 100
        if result == "draw":
            return 50
        return 0

    if game_mode == "topical_quiz":
        return round(_number(metadata, "correct_count") / QUIZ_TOTAL_QUESTIONS * 100)

    if game_mode == "the_grid":
        return round(min(_number(metadata, "cells_filled"), GRID_CELLS) / GRID_CELLS * 100)

    return 0


def is_perfect_score(game_mode: str, metadata) -> bool:
    if not isinstance(metadata, dict):
        return False
    if game_mode == "the_thread":
        return metadata.get("won") is True and _number(metadata, "hints_revealed") == 0
    if game_mode == "tic_tac_toe":
        return metadata.get("result") == "win"
    if game_mode == "topical_quiz":
        return _number(metadata, "correct_count") == QUIZ_TOTAL_QUESTIONS
    if game_mode == "the_grid":
        return _number(metadata, "cells_filled") == GRID_CELLS
    return False


def calculate_proficiency(game_mode: str, attempts: list[dict]) -> dict:
    out = {
        "game_mode": game_mode,
        "display_name": GAME_MODE_DISPLAY[game_mode]["skill_name"],
        "percentage": 0,
        "games_played": len(attempts),
        "perfect_scores": 0,
    }
    if not attempts:
        return out
    total = sum(normalize_score(game_mode, a.get("metadata")) for a in attempts)
    out["percentage"] = round(total / len(attempts))
    out["perfect_scores"] = sum(1 for a in attempts if is_perfect_score(game_mode, a.get("metadata")))
    return out


def calculate_global_iq(proficiencies: list[dict]) -> int:
    """Weighted average over played modes; unplayed modes' weight is redistributed."""
    played = [p for p in proficiencies if p["games_played"] > 0]
    if not played:
        return 0
    total_weight = sum(IQ_WEIGHTS[p["game_mode"]] for p in played)
    weighted = sum(p["percentage"] * IQ_WEIGHTS[p["game_mode"]] / total_weight for p in played)
    return round(weighted)


# -- tiers ---------------------------------------------------------------------


def get_tier_for_points(total_iq: int) -> dict:
    if total_iq < 0:
        return IQ_TIERS[0]
    for tier in reversed(IQ_TIERS):
        if total_iq >= tier["min_points"]:
            return tier
    return IQ_TIERS[0]


def get_next_tier(tier: dict) -> dict | None:
    if tier["tier"] >= len(IQ_TIERS):
        return None
    return IQ_TIERS[tier["tier"]]


def get_progress_to_next_tier(total_iq: int) -> int:
    if total_iq < 0:
        return 0
    current = get_tier_for_points(total_iq)
    nxt = get_next_tier(current)
    if nxt is None:
        return 100
    span = nxt["min_points"] - current["min_points"]
    return round((total_iq - current["min_points"]) / span * 100)


def get_points_to_next_tier(total_iq: int) -> int:
    points = max(0, total_iq)
    nxt = get_next_tier(get_tier_for_points(points))
    if nxt is None:
        return 0
    return nxt["min_points"] - points


def format_total_iq(points: int) -> str:
    return f"{points:,} IQ"


# -- streaks -------------------------------------------------------------------

MAX_FREEZES = 3
FREEZE_MILESTONE_DAYS = 7


def _days_between(later: str, earlier: str) -> int:
    return (date.fromisoformat(later) - date.fromisoformat(earlier)).days


def _gap_frozen(later: str, earlier: str, freezes: set[str]) -> bool:
    """True when every day strictly between the two dates is frozen."""
    start = date.fromisoformat(earlier)
    return all((start + timedelta(days=i)).isoformat() in freezes for i in range(1, _days_between(later, earlier)))


def _continues(later: str, earlier: str, freezes: set[str]) -> bool:
    return _days_between(later, earlier) >= 1 and _gap_frozen(later, earlier, freezes)


def calculate_streak(attempt_dates, freeze_dates=(), today: str | None = None) -> dict:
    """Current and longest run of consecutive play days.

    Missed days covered by streak freezes do not break a run. The current
    streak is alive while every day strictly between the latest play and
    today is frozen.
    """
    dates = sorted(set(attempt_dates), reverse=True)
    if not dates:
        return {"current": 0, "longest": 0}
    freezes = set(freeze_dates)
    today = today or date.today().isoformat()

    longest = 0
    run = 1
    for later, earlier in zip(dates, dates[1:]):
        if _continues(later, earlier, freezes):
            run += 1
        else:
            longest = max(longest, run)
            run = 1
    longest = max(longest, run)

    current = 0
    if dates[0] <= today and _gap_frozen(today, dates[0], freezes):
        current = 1
        for later, earlier in zip(dates, dates[1:]):
            if not _continues(later, earlier, freezes):
                break
            current += 1
    return {"current": current, "longest": longest}


def refresh_streak_freezes(today: str, play_dates: list[str]) -> dict:
    """Spend a freeze on a missed yesterday, or grant one at a streak milestone.

    A freeze is only spent when it reconnects today to the last play, that is
    when every other day since the last play is already frozen.
    """
    out = {"used": None, "awarded": False}
    past = [d for d in play_dates if d <= today]
    if not past:
        return out
    freezes = set(db.list_streak_freezes())
    last_played = max(past)
    yesterday = (date.fromisoformat(today) - timedelta(days=1)).isoformat()

    needs_freeze = last_played < yesterday and yesterday not in freezes and _gap_frozen(yesterday, last_played, freezes)
    if needs_freeze and db.get_available_freezes() > 0:
        db.use_streak_freeze(yesterday)
        db.log_event(yesterday, "streak_freeze", f"Streak freeze used automatically for {yesterday}.")
        logger.info("Auto-used streak freeze for %s", yesterday)
        out["used"] = yesterday
        return out

    current = calculate_streak(past, freezes, today=today)["current"]
    if current and current % FREEZE_MILESTONE_DAYS == 0:
        out["awarded"] = db.award_milestone_freeze(current, MAX_FREEZES)
        if out["awarded"]:
            db.log_event(today, "streak_freeze_awarded", f"Earned a streak freeze for a {current}-day streak.")
    return out


# -- score distribution --------------------------------------------------------


def bucket_size_for_mode(game_mode: str) -> int:
    return DISTRIBUTION_BUCKET_SIZE.get(game_mode, 10)


def calculate_distribution_buckets(raw: list[dict], max_score: int = 100, bucket_size: int = 10) -> list[dict]:
    buckets = {i * bucket_size: 0 for i in range(max_score // bucket_size + 1)}
    total = 0
    for row in raw:
        key = (int(row["score"]) // bucket_size) * bucket_size
        if 0 <= key <= max_score:
            buckets[key] = buckets.get(key, 0) + row["count"]
            total += row["count"]
    return [
        {"score": score, "count": count, "percentage": round(count / total * 100) if total else 0}
        for score, count in sorted(buckets.items())
    ]


def normalize_distribution(raw: list[dict]) -> list[dict]:
    total = sum(r["count"] for r in raw)
    return [{"score": r["score"], "count": r["count"], "percentage": round(r["count"] / total * 100) if total else 0} for r in raw]


def get_percentile_rank(user_score: int, distribution: list[dict]) -> int:
    """Percentage of players who scored strictly lower."""
    total = sum(b["count"] for b in distribution)
    if not total:
        return 0
    lower = sum(b["count"] for b in distribution if b["score"] < user_score)
    return round(lower / total * 100)


def get_mode_distribution(game_mode: str, user_score: int | None = None) -> dict:
    attempts = db.list_attempts(completed_only=True, game_mode=game_mode)
    counts: dict[int, int] = {}
    for attempt in attempts:
        normalized = normalize_score(game_mode, attempt["metadata"])
        counts[normalized] = counts.get(normalized, 0) + 1
    raw = [{"score": score, "count": count} for score, count in sorted(counts.items())]
    buckets = calculate_distribution_buckets(raw, 100, bucket_size_for_mode(game_mode))
    out = {"game_mode": game_mode, "total": len(attempts), "scores": normalize_distribution(raw), "buckets": buckets}
    if user_score is not None:
        out["percentile"] = get_percentile_rank(user_score, buckets)
    return out


# -- profile -------------------------------------------------------------------


def get_user_stats(today: str | None = None) -> dict:
    today = today or db.get_app_today()
    attempts = db.list_attempts(completed_only=True)
    refresh_streak_freezes(today, [a["puzzle_date"] for a in attempts])
    by_mode: dict[str, list[dict]] = {mode: [] for mode in GAME_MODES}
    for attempt in attempts:
        by_mode.setdefault(attempt["game_mode"], []).append(attempt)

    proficiencies = [calculate_proficiency(mode, by_mode[mode]) for mode in GAME_MODES]
    streak = calculate_streak([a["puzzle_date"] for a in attempts], db.list_streak_freezes(), today=today)
    total_iq = db.get_total_iq()
    tier = get_tier_for_points(total_iq)
    return {
        "global_iq": calculate_global_iq(proficiencies),
        "proficiencies": proficiencies,
        "total_puzzles": len(attempts),
        "games_played_today": sum(1 for a in attempts if a["puzzle_date"] == today),
        "current_streak": streak["current"],
        "longest_streak": streak["longest"],
        "last_played_date": attempts[0]["puzzle_date"] if attempts else None,
        "available_freezes": db.get_available_freezes(),
        "total_iq": total_iq,
        "total_iq_display": format_total_iq(total_iq),
        "tier": tier,
        "next_tier": get_next_tier(tier),
        "progress_to_next_tier": get_progress_to_next_tier(total_iq),
        "points_to_next_tier": get_points_to_next_tier(total_iq),
    }
