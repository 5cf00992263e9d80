from __future__ import annotations

import argparse
import logging
import random

from footiq import grid_sandbox
from footiq.content import stable_seed
from footiq.db import today_key

logger = logging.getLogger(__name__)

DEFAULT_DAYS_AHEAD = 7


def autofill_grids(start_date: str | None = None, days: int = DEFAULT_DAYS_AHEAD, mode: str = "mixed") -> dict:
    """Generate and publish a grid for each unscheduled day in the window."""
    start_date = start_date or today_key()
    schedule = grid_sandbox.get_grid_schedule(start_date, days)
    if not schedule["success"]:
        return {"published": [], "failed": [{"date": start_date, "error": schedule["error"]}]}

    published, failed = [], []
    for day in schedule["data"]:
        if day["has_grid"]:
            continue
        generated = grid_sandbox.generate_grid(mode, rng=random.Random(stable_seed("the_grid", day["date"])))
        if not generated["success"]:
            logger.warning("Grid generation failed for %s: %s", day["date"], generated["error"])
            failed.append({"date": day["date"], "error": generated["error"]})
            continue
        result = grid_sandbox.publish_grid(generated["data"]["grid"], day["date"], title="Daily Grid")
        if result["success"]:
            published.append({"date": day["date"], "id": result["data"]["id"]})
        else:
            failed.append({"date": day["date"], "error": result["error"]})

    logger.info("Grid autofill from %s: %d published, %d failed", start_date, len(published), len(failed))
    return {"published": published, "failed": failed}


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser()
    parser.add_argument("--days", type=int, default=DEFAULT_DAYS_AHEAD)
    parser.add_argument("--mode", choices=list(grid_sandbox.GRID_MODES), default="mixed")
    args = parser.parse_args()
    autofill_grids(days=args.days, mode=args.mode)


if __name__ == "__main__":
    main()
