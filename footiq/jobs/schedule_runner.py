from __future__ import annotations

import logging
from datetime import date

from footiq.content import seed_from_pack
from footiq.db import get_schedule_context, get_settings, init_db, mark_reminder_sent, was_reminder_sent
from footiq.jobs.grid_autofill import autofill_grids
from footiq.jobs.map_external_ids import api_football_key, map_players
from footiq.jobs.reminders import send_evening, send_morning


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    init_db()
    ctx = get_schedule_context()
    today = ctx["local_date"]
    hour = ctx["local_hour"]
    minute = ctx["local_minute"]

    # Run this command every 5-10 minutes via cron/systemd timer.
    if hour == 0 and minute < 15:
        autofill_grids(today)
        seed_from_pack(today)

    if hour == 8 and minute < 15:
        send_morning(today)

    if hour == 19 and minute < 15:
        send_evening(today)

    # Mondays only, once
    if date.fromisoformat(today).weekday() == 0 and hour == 3 and minute < 15 and api_football_key(get_settings()):
        if not was_reminder_sent("map_external_ids", today):
            map_players()
            mark_reminder_sent("map_external_ids", today)


if __name__ == "__main__":
    main()
