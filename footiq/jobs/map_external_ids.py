from __future__ import annotations

import argparse
import logging
import os

from footiq.db import (
    get_club_api_map,
    get_player_appearances,
    get_settings,
    list_players_for_mapping,
    set_club_api_football_id,
    set_player_api_football_id,
)
from footiq.external_ids import (
    DELAY_BETWEEN_REQUESTS_MS,
    REQUEST_SAFETY_LIMIT,
    ApiFootballClient,
    run_career_validation_batch,
    run_mapping_batch,
)
from footiq.notifier import build_notifier

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


def api_football_key(settings: dict) -> str:
    return settings.get("api_football_key") or os.environ.get("API_FOOTBALL_KEY", "")


def map_players(limit: int = DEFAULT_BATCH_SIZE, budget: int = REQUEST_SAFETY_LIMIT, delay_ms: int = DELAY_BETWEEN_REQUESTS_MS, client: ApiFootballClient | None = None) -> dict:
    """Search unmapped players and store the high-confidence ids."""
    settings = get_settings()
    client = client or ApiFootballClient(api_football_key(settings))
    result = run_mapping_batch(list_players_for_mapping(limit, unmapped_only=True), client, budget, delay_ms)
    for mapped in result["mapped"]:
        set_player_api_football_id(mapped["player_qid"], mapped["api_football_id"])

    logger.info(
        "Mapping batch: %d mapped, %d flagged, %d skipped, %d requests",
        len(result["mapped"]),
        len(result["flagged_for_review"]),
        len(result["skipped"]),
        result["requests_used"],
    )
    build_notifier(settings).send(
        "API-Football mapping",
        f"Mapped {len(result['mapped'])}, flagged {len(result['flagged_for_review'])}, skipped {len(result['skipped'])} "
        f"({result['requests_used']}/{result['request_budget']} requests).",
    )
    return result


def validate_careers(limit: int = DEFAULT_BATCH_SIZE, budget: int = REQUEST_SAFETY_LIMIT, delay_ms: int = DELAY_BETWEEN_REQUESTS_MS, client: ApiFootballClient | None = None) -> dict:
    """Compare mapped players' club histories with the API and store discovered club ids."""
    settings = get_settings()
    client = client or ApiFootballClient(api_football_key(settings))
    players = [
        {
            "player_qid": p["id"],
            "player_name": p["name"],
            "api_football_id": p["api_football_id"],
            "our_appearances": get_player_appearances(p["id"]),
        }
        for p in list_players_for_mapping(limit, unmapped_only=False)
    ]
    result = run_career_validation_batch(players, client, budget, delay_ms, existing_club_map=get_club_api_map())
    for club in result["club_mappings_discovered"]:
        set_club_api_football_id(club["club_qid"], club["api_football_id"])

    flagged = sum(1 for v in result["validated"] if v["total_discrepancies"] > 0)
    logger.info("Career validation: %d validated, %d with discrepancies, %d errors", len(result["validated"]), flagged, len(result["errors"]))
    build_notifier(settings).send(
        "API-Football career check",
        f"Validated {len(result['validated'])} players, {flagged} with discrepancies, "
        f"{len(result['club_mappings_discovered'])} club ids discovered.",
    )
    return result


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser()
    parser.add_argument("mode", choices=["map", "validate"])
    parser.add_argument("--limit", type=int, default=DEFAULT_BATCH_SIZE)
    parser.add_argument("--budget", type=int, default=REQUEST_SAFETY_LIMIT)
    args = parser.parse_args()

    if args.mode == "map":
        map_players(args.limit, args.budget)
    else:
        validate_careers(args.limit, args.budget)


if __name__ == "__main__":
    main()
