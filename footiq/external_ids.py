"""Reconcile our player records with API-Football v3.

Players are matched by name search, then disambiguated on birth year and
nationality. Already-mapped players can have their club history compared
against the API's team list, which also discovers club id mappings.
"""
from __future__ import annotations

import json
import logging
import re
import time
import unicodedata
import urllib.error
import urllib.parse
import urllib.request
from datetime import date

logger = logging.getLogger(__name__)

API_FOOTBALL_BASE = "https://v3.football.api-sports.io"
API_KEY_HEADER = "x-apisports-key"
REQUEST_SAFETY_LIMIT = 7000
DELAY_BETWEEN_REQUESTS_MS = 210
MIN_SEARCH_LENGTH = 4
PEAK_AGE = 28
EARLIEST_API_SEASON = 2010
CURRENT_SEASON = 2024

NATION_LABEL_TO_ISO = {
    "england": "GB-ENG", "scotland": "GB-SCT", "wales": "GB-WLS", "northern ireland": "GB-NIR",
    "afghanistan": "AF", "albania": "AL", "algeria": "DZ", "andorra": "AD", "angola": "AO",
    "antigua and barbuda": "AG", "argentina": "AR", "armenia": "AM", "australia": "AU", "austria": "AT",
    "azerbaijan": "AZ", "bahrain": "BH", "bangladesh": "BD", "barbados": "BB", "belarus": "BY",
    "belgium": "BE", "benin": "BJ", "bermuda": "BM", "bolivia": "BO",
    "bosnia and herzegovina": "BA", "botswana": "BW", "brazil": "BR", "bulgaria": "BG",
    "burkina faso": "BF", "burundi": "BI", "cameroon": "CM", "canada": "CA", "cape verde": "CV",
    "central african republic": "CF", "chad": "TD", "chile": "CL", "china": "CN", "colombia": "CO",
    "comoros": "KM", "congo": "CG", "democratic republic of the congo": "CD", "costa rica": "CR",
    "croatia": "HR", "cuba": "CU", "curaçao": "CW", "curacao": "CW", "cyprus": "CY",
    "czech republic": "CZ", "czechia": "CZ", "denmark": "DK", "dominican republic": "DO",
    "ecuador": "EC", "egypt": "EG", "el salvador": "SV", "equatorial guinea": "GQ",
    "eritrea": "ER", "estonia": "EE", "ethiopia": "ET", "faroe islands": "FO", "fiji": "FJ",
    "finland": "FI", "france": "FR", "gabon": "GA", "gambia": "GM", "georgia": "GE", "germany": "DE",
    "ghana": "GH", "gibraltar": "GI", "greece": "GR", "grenada": "GD", "guatemala": "GT",
    "guinea": "GN", "guinea-bissau": "GW", "guyana": "GY", "haiti": "HT", "honduras": "HN",
    "hong kong": "HK", "hungary": "HU", "iceland": "IS", "india": "IN", "indonesia": "ID",
    "iran": "IR", "iraq": "IQ", "ireland": "IE", "republic of ireland": "IE", "israel": "IL",
    "italy": "IT", "ivory coast": "CI", "côte d'ivoire": "CI", "jamaica": "JM", "japan": "JP",
    "jordan": "JO", "kazakhstan": "KZ", "kenya": "KE", "kosovo": "XK", "kuwait": "KW",
    "latvia": "LV", "lebanon": "LB", "liberia": "LR", "libya": "LY", "liechtenstein": "LI",
    "lithuania": "LT", "luxembourg": "LU", "north macedonia": "MK", "madagascar": "MG",
    "malawi": "MW", "malaysia": "MY", "mali": "ML", "malta": "MT", "mauritania": "MR",
    "mauritius": "MU", "mexico": "MX", "moldova": "MD", "montenegro": "ME", "morocco": "MA",
    "mozambique": "MZ", "namibia": "NA", "nepal": "NP", "netherlands": "NL", "new zealand": "NZ",
    "nicaragua": "NI", "niger": "NE", "nigeria": "NG", "norway": "NO", "oman": "OM", "pakistan": "PK",
    "palestine": "PS", "panama": "PA", "paraguay": "PY", "peru": "PE", "philippines": "PH",
    "poland": "PL", "portugal": "PT", "qatar": "QA", "romania": "RO", "russia": "RU", "rwanda": "RW",
    "saint kitts and nevis": "KN", "saint lucia": "LC", "samoa": "WS", "san marino": "SM",
    "saudi arabia": "SA", "senegal": "SN", "serbia": "RS", "serbia and montenegro": "RS",
    "seychelles": "SC", "sierra leone": "SL", "singapore": "SG", "slovakia": "SK", "slovenia": "SI",
    "somalia": "SO", "south africa": "ZA", "south korea": "KR", "korea republic": "KR",
    "spain": "ES", "sri lanka": "LK", "sudan": "SD", "suriname": "SR", "sweden": "SE",
    "switzerland": "CH", "syria": "SY", "taiwan": "TW", "tanzania": "TZ", "thailand": "TH",
    "togo": "TG", "trinidad and tobago": "TT", "tunisia": "TN", "turkey": "TR", "türkiye": "TR",
    "uganda": "UG", "ukraine": "UA", "united arab emirates": "AE",
    "united kingdom": "GB", "united states of america": "US", "united states": "US",
    "uruguay": "UY", "uzbekistan": "UZ", "venezuela": "VE", "vietnam": "VN", "zambia": "ZM",
    "zimbabwe": "ZW",
    "soviet union": "RU", "czechoslovakia": "CZ", "yugoslavia": "RS",
    "federal republic of yugoslavia": "RS", "socialist federal republic of yugoslavia": "RS",
    "west germany": "DE", "rhodesia": "ZW", "zimbabwe rhodesia": "ZW",
    "french guiana": "GF", "kingdom of the netherlands": "NL", "kingdom of denmark": "DK",
    "netherlands antilles": "NL", "people's republic of china": "CN", "the gambia": "GM",
    "commonwealth of independent states": "RU", "united kingdom of great britain and ireland": "GB",
}

NATIONAL_TEAM_PATTERN = re.compile(r"\bU\d{2}\b|national|olympic", re.IGNORECASE)
CLUB_AFFIX_PATTERN = re.compile(r"\b(fc|cf|sc|afc|sfc|ac|as|ss|us|rc|rcd|cd|ud|sd|bsc|bv|sv|vfb|tsv|fk|nk|sk|pk|if|bk)\b")

OUTCOME_PRIORITY = {"high": 4, "ambiguous": 3, "medium": 2, "no_match": 1, "empty": 0}


class ApiFootballError(RuntimeError):
    pass


# -- helpers -------------------------------------------------------------------


def estimate_search_season(birth_year: int | None) -> int:
    if birth_year is None:
        return CURRENT_SEASON
    return max(EARLIEST_API_SEASON, min(birth_year + PEAK_AGE, CURRENT_SEASON))


def api_nationality_to_iso(nationality: str | None) -> str | None:
    if not nationality:
        return None
    return NATION_LABEL_TO_ISO.get(nationality.lower().strip())


def sanitize_search_name(name: str) -> str:
    """Reduce a name to the ASCII letters, digits and spaces the search endpoint accepts."""
    stripped = "".join(ch for ch in unicodedata.normalize("NFD", name) if not unicodedata.combining(ch))
    stripped = re.sub(r"[^a-zA-Z0-9\s]", " ", stripped)
    return re.sub(r"\s+", " ", stripped).strip()


def parse_birth_year(date_str) -> int | None:
    if not date_str or not isinstance(date_str, str):
        return None
    try:
        return int(date_str[:4])
    except ValueError:
        return None


def check_api_errors(data: dict) -> None:
    """The API answers HTTP 200 on failure and puts the problem in "errors"."""
    errors = data.get("errors")
    if errors:
        raise ApiFootballError(f"API-Football error: {json.dumps(errors)}")


# -- HTTP ----------------------------------------------------------------------


class ApiFootballClient:
    max_attempts = 3
    timeout_s = 10

    def __init__(self, api_key: str, base_url: str = API_FOOTBALL_BASE) -> None:
        if not api_key:
            raise ApiFootballError("API-Football key is not configured")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def _get(self, path: str, params: dict) -> dict:
        url = f"{self.base_url}{path}?{urllib.parse.urlencode(params)}"
        req = urllib.request.Request(url, headers={API_KEY_HEADER: self.api_key}, method="GET")
        for attempt in range(1, self.max_attempts + 1):
            try:
                with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                    data = json.loads(resp.read().decode("utf-8"))
                break
            except urllib.error.HTTPError as exc:
                body = exc.read().decode("utf-8", errors="replace")
                raise ApiFootballError(f"API-Football error {exc.code}: {body}") from exc
            except (urllib.error.URLError, TimeoutError, OSError) as exc:
                if attempt >= self.max_attempts:
                    raise ApiFootballError(f"API-Football request failed after {attempt} attempts: {exc}") from exc
                logger.warning("API-Football request to %s failed (attempt %d): %s", path, attempt, exc)
                time.sleep(0.25 * attempt)
        check_api_errors(data)
        return data

    def search_players(self, name: str) -> dict:
        return self._get("/players/profiles", {"search": sanitize_search_name(name)})

    def player_teams(self, api_football_id: int) -> list[dict]:
        return self._get("/players/teams", {"player": api_football_id}).get("response") or []


# -- matching ------------------------------------------------------------------


def score_match(ours: dict, api_player: dict) -> dict:
    info = api_player["player"]
    api_year = parse_birth_year((info.get("birth") or {}).get("date"))
    api_code = api_nationality_to_iso(info.get("nationality"))
    year, code = ours.get("birth_year"), ours.get("nationality_code")

    year_match = year is not None and api_year is not None and year == api_year
    nation_match = code is not None and api_code is not None and code == api_code

    if year_match and nation_match:
        return {"confidence": "high", "reason": f"Matched birth year ({year}) and nationality ({code})"}
    if year_match:
        return {"confidence": "medium", "reason": f"Matched birth year ({year}) but nationality differs (ours={code}, api={api_code})"}
    if nation_match:
        return {"confidence": "medium", "reason": f"Matched nationality ({code}) but birth year differs (ours={year}, api={api_year})"}
    return {
        "confidence": "none",
        "reason": f"No match: birth year (ours={year}, api={api_year}), nationality (ours={code}, api={api_code})",
    }


def score_candidates(response: dict, ours: dict) -> dict:
    players = response.get("response") or []
    if not response.get("results") or not players:
        return {"outcome": "empty", "total": 0}
    scored = [{"api_player": p, **score_match(ours, p)} for p in players]
    high = [s for s in scored if s["confidence"] == "high"]
    medium = [s for s in scored if s["confidence"] == "medium"]
    total = response["results"]
    if len(high) == 1:
        return {"outcome": "high", "match": high[0], "total": total}
    if len(high) > 1:
        return {"outcome": "ambiguous", "high_matches": high, "total": total}
    if medium:
        return {"outcome": "medium", "match": medium[0], "total": total}
    return {"outcome": "no_match", "total": total}


def _candidate_summary(api_player: dict) -> dict:
    info = api_player["player"]
    return {
        "api_football_id": info["id"],
        "name": info.get("name"),
        "birth_year": parse_birth_year((info.get("birth") or {}).get("date")),
        "nationality": info.get("nationality"),
        "photo": info.get("photo") or None,
    }


def _result(player: dict, api_id, confidence: str, reason: str, candidates: int, **extra) -> dict:
    return {
        "player_qid": player["id"],
        "player_name": player["name"],
        "api_football_id": api_id,
        "confidence": confidence,
        "reason": reason,
        "candidates": candidates,
        **extra,
    }


def resolve_one_player(player: dict, client: ApiFootballClient, delay_ms: int = 0) -> tuple[dict, int]:
    """Find the API-Football id for one player. Returns (result, requests used)."""
    if len(player["name"]) < MIN_SEARCH_LENGTH:
        reason = f'Name "{player["name"]}" too short (min {MIN_SEARCH_LENGTH} chars for API search)'
        return _result(player, None, "none", reason, 0), 0

    used = 0
    try:
        best = score_candidates(client.search_players(player["name"]), player)
        used += 1

        if best["outcome"] in ("empty", "no_match"):
            parts = sanitize_search_name(player["name"]).split()
            last_name = parts[-1] if parts else ""
            if len(parts) > 1 and len(last_name) >= MIN_SEARCH_LENGTH:
                if delay_ms > 0:
                    time.sleep(delay_ms / 1000)
                fallback = score_candidates(client.search_players(last_name), player)
                used += 1
                if OUTCOME_PRIORITY[fallback["outcome"]] > OUTCOME_PRIORITY[best["outcome"]]:
                    best = fallback
    except ApiFootballError as exc:
        return _result(player, None, "none", f"API error: {exc}", 0), used

    outcome = best["outcome"]
    if outcome == "high":
        match = best["match"]
        return _result(player, match["api_player"]["player"]["id"], "high", match["reason"], best["total"]), used
    if outcome == "ambiguous":
        highs = best["high_matches"]
        reason = f"Ambiguous: {len(highs)} candidates match birth year + nationality"
        return _result(player, None, "medium", reason, best["total"], ambiguous_candidates=[_candidate_summary(h["api_player"]) for h in highs]), used
    if outcome == "medium":
        match = best["match"]
        return (
            _result(
                player,
                match["api_player"]["player"]["id"],
                "medium",
                f"Best partial match: {match['reason']}",
                best["total"],
                ambiguous_candidates=[_candidate_summary(match["api_player"])],
            ),
            used,
        )
    if outcome == "no_match":
        return _result(player, None, "none", f"{best['total']} candidates but none matched birth year or nationality", best["total"]), used
    return _result(player, None, "none", "No API results for search query", 0), used


def run_mapping_batch(
    players: list[dict],
    client: ApiFootballClient,
    request_budget: int = REQUEST_SAFETY_LIMIT,
    delay_ms: int = DELAY_BETWEEN_REQUESTS_MS,
) -> dict:
    mapped, flagged, skipped = [], [], []
    used = 0
    for player in players:
        if used >= request_budget:
            logger.info("Request budget of %d reached, stopping", request_budget)
            break
        if len(player["name"]) < MIN_SEARCH_LENGTH:
            skipped.append(_result(player, None, "none", f'Name "{player["name"]}" too short (min {MIN_SEARCH_LENGTH} chars)', 0))
            continue
        if player.get("birth_year") is None:
            skipped.append(_result(player, None, "none", "Missing birth_year, cannot safely disambiguate", 0))
            continue

        result, cost = resolve_one_player(player, client, delay_ms=delay_ms)
        used += cost
        if result["confidence"] == "high":
            mapped.append(result)
        elif result["confidence"] == "medium":
            flagged.append(result)
        else:
            skipped.append(result)

        if delay_ms > 0 and used < request_budget:
            time.sleep(delay_ms / 1000)

    return {"mapped": mapped, "flagged_for_review": flagged, "skipped": skipped, "requests_used": used, "request_budget": request_budget}


# -- career data ---------------------------------------------------------------


def map_api_transfer_to_appearances(transfers: list[dict]) -> list[dict]:
    """Infer club stints from a transfer history."""
    ordered = sorted(transfers or [], key=lambda t: t["date"])
    out = []
    for i, transfer in enumerate(ordered):
        year = int(transfer["date"][:4])
        teams = transfer["teams"]
        if i == 0 and teams["out"].get("id"):
            out.append({"club_name": teams["out"]["name"], "api_club_id": teams["out"]["id"], "start_year": year, "end_year": year})
        end_year = int(ordered[i + 1]["date"][:4]) if i + 1 < len(ordered) else None
        out.append({"club_name": teams["in"]["name"], "api_club_id": teams["in"]["id"], "start_year": year, "end_year": end_year})
    return out


def detect_overlapping_seasons(a_stints: list[dict], b_stints: list[dict], current_year: int | None = None) -> list[dict]:
    """Same-club stints whose year ranges intersect; open stints run to the current year."""
    current_year = current_year or date.today().year
    overlaps = []
    for a in a_stints:
        for b in b_stints:
            if a["api_club_id"] != b["api_club_id"]:
                continue
            a_end = a["end_year"] if a["end_year"] is not None else current_year
            b_end = b["end_year"] if b["end_year"] is not None else current_year
            if a["start_year"] <= b_end and b["start_year"] <= a_end:
                overlaps.append(
                    {
                        "club_name": a["club_name"],
                        "api_club_id": a["api_club_id"],
                        "overlap_start": max(a["start_year"], b["start_year"]),
                        "overlap_end": min(a_end, b_end),
                    }
                )
    return overlaps


def is_national_team(team_name: str) -> bool:
    if NATIONAL_TEAM_PATTERN.search(team_name):
        return True
    base = re.sub(r"\s+U\d{2}$", "", team_name).strip()
    return base.lower() in NATION_LABEL_TO_ISO


def api_teams_to_club_summaries(teams: list[dict]) -> list[dict]:
    out = []
    for entry in teams:
        seasons = sorted(entry.get("seasons") or [])
        if not seasons or is_national_team(entry["team"]["name"]):
            continue
        out.append(
            {
                "api_club_id": entry["team"]["id"],
                "club_name": entry["team"]["name"],
                "start_year": seasons[0],
                "end_year": seasons[-1],
                "seasons": seasons,
            }
        )
    return out


def normalize_club_name(name: str) -> str:
    out = CLUB_AFFIX_PATTERN.sub("", name.lower())
    out = re.sub(r"[.\-']", " ", out)
    return re.sub(r"\s+", " ", out).strip()


def _club_match(ours: dict, api: dict) -> dict:
    return {
        "our_club_id": ours["club_id"],
        "our_club_name": ours["club_name"],
        "api_club_id": api["api_club_id"],
        "api_club_name": api["club_name"],
        "our_years": {"start": ours["start_year"], "end": ours["end_year"]},
        "api_years": {"start": api["start_year"], "end": api["end_year"]},
        "year_diff_start": api["start_year"] - ours["start_year"] if ours["start_year"] is not None else None,
        "year_diff_end": api["end_year"] - ours["end_year"] if ours["end_year"] is not None else None,
    }


def compare_career_data(api_clubs: list[dict], our_appearances: list[dict], club_id_map: dict | None = None, current_year: int | None = None) -> dict:
    """Pair API clubs with our appearances: first by known club id, then by name and years."""
    current_year = current_year or date.today().year
    matched = []
    matched_api: set[int] = set()
    matched_ours: set[str] = set()

    def key(ours: dict) -> str:
        return f"{ours['club_id']}:{ours['start_year'] if ours['start_year'] is not None else ''}"

    if club_id_map:
        for api in api_clubs:
            for ours in our_appearances:
                if key(ours) in matched_ours or api["api_club_id"] in matched_api:
                    continue
                if club_id_map.get(ours["club_id"]) == api["api_club_id"]:
                    matched.append(_club_match(ours, api))
                    matched_api.add(api["api_club_id"])
                    matched_ours.add(key(ours))
                    break

    for api in api_clubs:
        if api["api_club_id"] in matched_api:
            continue
        api_norm = normalize_club_name(api["club_name"])
        best, best_score = None, 0
        for ours in our_appearances:
            if key(ours) in matched_ours:
                continue
            our_norm = normalize_club_name(ours["club_name"])
            score = 0
            if api_norm == our_norm:
                score = 3
            elif api_norm in our_norm or our_norm in api_norm:
                score = 2
            if score and ours["start_year"] is not None:
                our_end = ours["end_year"] if ours["end_year"] is not None else current_year
                if api["start_year"] <= our_end and ours["start_year"] <= api["end_year"]:
                    score += 1
            if score > best_score:
                best, best_score = ours, score
        if best is not None and best_score >= 2:
            matched.append(_club_match(best, api))
            matched_api.add(api["api_club_id"])
            matched_ours.add(key(best))

    return {
        "matched": matched,
        "missing_from_ours": [a for a in api_clubs if a["api_club_id"] not in matched_api],
        "missing_from_api": [o for o in our_appearances if key(o) not in matched_ours],
    }


def count_discrepancies(comparison: dict) -> int:
    drifted = [
        m
        for m in comparison["matched"]
        if (m["year_diff_start"] is not None and abs(m["year_diff_start"]) > 1)
        or (m["year_diff_end"] is not None and abs(m["year_diff_end"]) > 1)
    ]
    return len(comparison["missing_from_ours"]) + len(comparison["missing_from_api"]) + len(drifted)


def run_career_validation_batch(
    players: list[dict],
    client: ApiFootballClient,
    request_budget: int = REQUEST_SAFETY_LIMIT,
    delay_ms: int = DELAY_BETWEEN_REQUESTS_MS,
    existing_club_map: dict | None = None,
) -> dict:
    """Validate club histories of mapped players, one /players/teams request each.

    Club id mappings found along the way are reused for later players.
    """
    club_map = dict(existing_club_map or {})
    discovered, validated, errors = [], [], []
    used = 0

    for player in players:
        if used >= request_budget:
            break
        try:
            teams = client.player_teams(player["api_football_id"])
            used += 1
        except ApiFootballError as exc:
            used += 1
            errors.append({"player_qid": player["player_qid"], "player_name": player["player_name"], "error": str(exc)})
        else:
            comparison = compare_career_data(api_teams_to_club_summaries(teams), player["our_appearances"], club_map)
            for match in comparison["matched"]:
                if match["our_club_id"] not in club_map:
                    club_map[match["our_club_id"]] = match["api_club_id"]
                    discovered.append(
                        {
                            "club_qid": match["our_club_id"],
                            "club_name": match["our_club_name"],
                            "api_football_id": match["api_club_id"],
                            "api_club_name": match["api_club_name"],
                            "discovered_via": player["player_qid"],
                        }
                    )
            validated.append(
                {
                    "player_qid": player["player_qid"],
                    "player_name": player["player_name"],
                    "api_football_id": player["api_football_id"],
                    "comparison": comparison,
                    "total_discrepancies": count_discrepancies(comparison),
                }
            )

        if delay_ms > 0 and used < request_budget:
            time.sleep(delay_ms / 1000)

    return {
        "validated": validated,
        "errors": errors,
        "club_mappings_discovered": discovered,
        "requests_used": used,
        "request_budget": request_budget,
    }
