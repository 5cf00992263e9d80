from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

COUNTRY_NAME_TO_CODE = {
    "Brazil": "BR",
    "France": "FR",
    "Argentina": "AR",
    "Germany": "DE",
    "Spain": "ES",
    "England": "GB",
    "Italy": "IT",
    "Portugal": "PT",
    "Netherlands": "NL",
    "Belgium": "BE",
    "Croatia": "HR",
    "Uruguay": "UY",
    "Colombia": "CO",
    "Chile": "CL",
    "Poland": "PL",
    "Sweden": "SE",
    "Denmark": "DK",
    "Norway": "NO",
    "Wales": "WL",
    "Scotland": "SC",
    "Ireland": "IE",
    "Serbia": "RS",
    "Senegal": "SN",
    "Morocco": "MA",
    "Nigeria": "NG",
    "Egypt": "EG",
    "Ivory Coast": "CI",
    "Cameroon": "CM",
    "Ghana": "GH",
    "Algeria": "DZ",
    "Japan": "JP",
    "South Korea": "KR",
    "Australia": "AU",
    "Mexico": "MX",
    "USA": "US",
    "Canada": "CA",
}

CODE_TO_COUNTRY_NAME = {code: name for name, code in COUNTRY_NAME_TO_CODE.items()}

TROPHY_TO_STATS_KEY = {
    # club competitions
    "Champions League": "ucl_titles",
    "UEFA Champions League": "ucl_titles",
    "Europa League": "europa_league_titles",
    "UEFA Europa League": "europa_league_titles",
    "Premier League": "premier_league_titles",
    "La Liga": "la_liga_titles",
    "Serie A": "serie_a_titles",
    "Bundesliga": "bundesliga_titles",
    "Ligue 1": "ligue_1_titles",
    "Eredivisie": "eredivisie_titles",
    "Primeira Liga": "primeira_liga_titles",
    "FA Cup": "fa_cup_titles",
    "Copa del Rey": "copa_del_rey_titles",
    "DFB-Pokal": "dfb_pokal_titles",
    "Coppa Italia": "coppa_italia_titles",
    "Coupe de France": "coupe_de_france_titles",
    "EFL Cup": "efl_cup_titles",
    "League Cup": "efl_cup_titles",
    "Club World Cup": "club_world_cup_titles",
    "FIFA Club World Cup": "club_world_cup_titles",
    "UEFA Super Cup": "uefa_super_cup_titles",
    "Community Shield": "community_shield_titles",
    "Copa Libertadores": "copa_libertadores_titles",
    "Libertadores": "copa_libertadores_titles",
    "Brasileirão": "brasileirao_titles",
    "Brasileirão Serie A": "brasileirao_titles",
    "Brazilian Serie A": "brasileirao_titles",
    "Argentine Primera División": "argentina_primera_titles",
    "Argentine Primera": "argentina_primera_titles",
    "Belgian Pro League": "belgian_pro_league_titles",
    # international competitions
    "World Cup": "world_cup_titles",
    "FIFA World Cup": "world_cup_titles",
    "World Cup Winner": "world_cup_titles",
    "Euros": "euros_titles",
    "European Championship": "euros_titles",
    "UEFA European Championship": "euros_titles",
    "Copa América": "copa_america_titles",
    "Copa America": "copa_america_titles",
    "Africa Cup of Nations": "afcon_titles",
    "AFCON": "afcon_titles",
    "AFC Asian Cup": "asian_cup_titles",
    "Gold Cup": "gold_cup_titles",
    "CONCACAF Gold Cup": "gold_cup_titles",
    "Nations League": "nations_league_titles",
    "UEFA Nations League": "nations_league_titles",
    "Confederations Cup": "confederations_cup_titles",
    "Olympic Games": "olympic_titles",
    "Olympics": "olympic_titles",
    # individual awards
    "Ballon d'Or": "ballon_dor_count",
    "Ballon dOr": "ballon_dor_count",
    "European Golden Shoe": "european_golden_shoe_count",
    "Golden Boot": "wc_golden_boot_count",
    "World Cup Golden Boot": "wc_golden_boot_count",
    "World Cup Golden Ball": "wc_golden_ball_count",
    "Kopa Trophy": "kopa_trophy_count",
    "Yashin Trophy": "yashin_trophy_count",
    "Gerd Müller Trophy": "gerd_muller_trophy_count",
    "Golden Boy": "golden_boy_count",
}

# "5+ Ballon d'Ors" -> threshold 5, stat name "Ballon d'Ors"
STAT_PATTERN = re.compile(r"^(\d+)\+?\s+(.+)$")

STAT_NAME_TO_KEY = {
    "ballon d'ors": "ballon_dor_count",
    "ballon d'or": "ballon_dor_count",
    "ballon dors": "ballon_dor_count",
    "ballon dor": "ballon_dor_count",
    "champions league titles": "ucl_titles",
    "ucl titles": "ucl_titles",
    "premier league titles": "premier_league_titles",
    "la liga titles": "la_liga_titles",
    "serie a titles": "serie_a_titles",
    "bundesliga titles": "bundesliga_titles",
    "ligue 1 titles": "ligue_1_titles",
    "world cup titles": "world_cup_titles",
    "world cups": "world_cup_titles",
    "european championships": "euros_titles",
    "euros": "euros_titles",
    "european golden shoes": "european_golden_shoe_count",
    "golden boots": "wc_golden_boot_count",
    "kopa trophies": "kopa_trophy_count",
    "kopa trophy": "kopa_trophy_count",
    "yashin trophies": "yashin_trophy_count",
    "yashin trophy": "yashin_trophy_count",
    "gerd müller trophies": "gerd_muller_trophy_count",
    "gerd muller trophies": "gerd_muller_trophy_count",
    "golden boys": "golden_boy_count",
    "golden boy": "golden_boy_count",
    "copa libertadores titles": "copa_libertadores_titles",
}

GRID_TROPHY_POOL = [
    "Champions League",
    "Europa League",
    "Premier League",
    "La Liga",
    "Serie A",
    "Bundesliga",
    "Ligue 1",
    "World Cup",
    "Euros",
    "Copa América",
    "Ballon d'Or",
    "FA Cup",
    "Copa del Rey",
    "DFB-Pokal",
    "Coppa Italia",
    "Africa Cup of Nations",
    "Copa Libertadores",
    "Kopa Trophy",
    "Yashin Trophy",
    "Golden Boy",
]

GRID_STAT_POOL = [
    "2+ Champions League titles",
    "3+ Champions League titles",
    "2+ World Cup titles",
    "2+ Ballon d'Ors",
    "3+ Ballon d'Ors",
    "5+ Ballon d'Ors",
    "2+ Premier League titles",
    "3+ Premier League titles",
    "2+ La Liga titles",
    "2+ Serie A titles",
]


def parse_stat(value: str) -> tuple[int, str] | None:
    """Return (threshold, stats_cache key) for a stat expression, or None."""
    match = STAT_PATTERN.match(value or "")
    if not match:
        logger.warning("Could not parse stat expression: %r", value)
        return None
    key = STAT_NAME_TO_KEY.get(match.group(2).lower().strip())
    if not key:
        logger.warning("Unknown stat name in expression: %r", value)
        return None
    return int(match.group(1)), key


def check_trophy_match(value: str, stats_cache: dict) -> bool:
    key = TROPHY_TO_STATS_KEY.get(value)
    if not key:
        logger.warning("Unknown trophy category: %r", value)
        return False
    return (stats_cache or {}).get(key, 0) > 0


def check_stat_match(value: str, stats_cache: dict) -> bool:
    parsed = parse_stat(value)
    if parsed is None:
        return False
    threshold, key = parsed
    return (stats_cache or {}).get(key, 0) >= threshold
