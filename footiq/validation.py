from __future__ import annotations

import unicodedata

from rapidfuzz import fuzz

MATCH_THRESHOLD = 0.85
MIN_PARTIAL_LENGTH = 3
PARTIAL_MATCH_SCORE = 0.95

# Letters NFD does not decompose into base + combining mark.
_EXTRA_FOLDS = str.maketrans({"ø": "o", "æ": "ae", "ß": "ss", "đ": "d", "ł": "l", "œ": "oe", "ı": "i"})


def normalize_string(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.translate(_EXTRA_FOLDS).strip()


def _ratio(a: str, b: str) -> float:
    return fuzz.ratio(a, b) / 100.0


def validate_guess(guess: str, answer: str) -> dict:
    """Fuzzy-compare a typed guess with the correct name.

    Accepts exact matches (case and accent insensitive), trailing-name
    partials ("Messi" for "Lionel Messi") and small typos.
    """
    g = " ".join(normalize_string(guess).split())
    a = " ".join(normalize_string(answer).split())
    if not g or not a:
        return {"is_match": False, "score": 0.0}
    if g == a:
        return {"is_match": True, "score": 1.0}

    if len(g) >= MIN_PARTIAL_LENGTH and a.endswith(" " + g):
        return {"is_match": True, "score": PARTIAL_MATCH_SCORE}

    score = _ratio(g, a)
    surname = a.split(" ")[-1]
    if len(g) >= MIN_PARTIAL_LENGTH and " " in a:
        score = max(score, _ratio(g, surname))
    score = round(score, 4)
    return {"is_match": score >= MATCH_THRESHOLD, "score": score}


def find_best_match(guess: str, answers: list[str]) -> str | None:
    if not guess or not guess.strip():
        return None
    for answer in answers:
        if validate_guess(guess, answer)["is_match"]:
            return answer
    return None
