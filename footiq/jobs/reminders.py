from __future__ import annotations

import argparse
import logging

from footiq.db import get_settings, list_puzzles, mark_reminder_sent, today_key, was_reminder_sent
from footiq.notifier import build_notifier
from footiq.stats import GAME_MODE_DISPLAY, get_user_stats

logger = logging.getLogger(__name__)


def _live_modes(for_date: str) -> list[str]:
    puzzles = list_puzzles(start_date=for_date, end_date=for_date)
    return [GAME_MODE_DISPLAY[p["game_mode"]]["display_name"] for p in puzzles if p["status"] == "live" and p["game_mode"] in GAME_MODE_DISPLAY]


def should_send_evening_nudge(for_date: str) -> bool:
    """A streak is at risk when nothing has been played today and yesterday's run is still alive."""
    stats = get_user_stats(today=for_date)
    return stats["games_played_today"] == 0 and stats["current_streak"] > 0


def send_morning(for_date: str | None = None) -> bool:
    for_date = for_date or today_key()
    if was_reminder_sent("morning", for_date):
        return False
    modes = _live_modes(for_date)
    if not modes:
        logger.info("No live puzzles for %s, skipping morning reminder", for_date)
        return False
    build_notifier(get_settings()).send("Today's puzzles are live", f"Ready for kick-off: {', '.join(modes)}.")
    mark_reminder_sent("morning", for_date)
    return True


def send_evening(for_date: str | None = None) -> bool:
    for_date = for_date or today_key()
    if was_reminder_sent("evening", for_date):
        return False
    if not should_send_evening_nudge(for_date):
        return False
    streak = get_user_stats(today=for_date)["current_streak"]
    build_notifier(get_settings()).send(
        "Streak at risk",
        f"Your {streak}-day streak ends at midnight. One puzzle keeps it alive.",
        priority="high",
    )
    mark_reminder_sent("evening", for_date)
    return True


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser()
    parser.add_argument("mode", choices=["morning", "evening"])
    args = parser.parse_args()

    if args.mode == "morning":
        send_morning()
    else:
        send_evening()


if __name__ == "__main__":
    main()
