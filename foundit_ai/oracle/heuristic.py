"""
Offline oracle
--------------
Deterministic stand-in for the Gemini oracle when no API key is configured.
Weights several cheap signals the same way a human desk clerk would: same
category, shared words, same place, close in time.
"""

from __future__ import annotations

import datetime as dt
import re
from typing import List, Optional, Set

from ..common.schemas import Report, VerificationPair
from .base import FALLBACK_PAIR

STOP_WORDS = {"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
              "of", "with", "by", "is", "it", "my", "its", "near", "was"}

COLORS = ["black", "white", "red", "blue", "green", "yellow", "orange", "purple",
          "pink", "brown", "grey", "gray", "silver", "gold", "navy", "maroon"]

SPELLINGS = {"grey": "gray", "colour": "color"}

TIME_WINDOW_HOURS = 48


def _words(text: str) -> List[str]:
    return re.findall(r"[a-z0-9]+", text.lower())


def keywords(text: str) -> Set[str]:
    return {w for w in _words(text) if w not in STOP_WORDS and len(w) > 2}


def _parse_time(value: str) -> Optional[dt.datetime]:
    try:
        parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def location_similarity(loc1: str, loc2: str) -> float:
    a, b = loc1.lower().strip(), loc2.lower().strip()
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.5
    return 0.0


def time_proximity(time1: str, time2: str) -> float:
    """1.0 for the same moment, decaying to 0 at the edge of the 48 hour window"""
    t1, t2 = _parse_time(time1), _parse_time(time2)
    if t1 is None or t2 is None:
        return 0.0
    hours = abs((t1 - t2).total_seconds()) / 3600
    return max(0.0, 1 - hours / TIME_WINDOW_HOURS)


class HeuristicOracle:

    def score(self, report_a: Report, report_b: Report) -> float:
        words_a = keywords(f"{report_a.item_name} {report_a.description}")
        words_b = keywords(f"{report_b.item_name} {report_b.description}")
        overlap = len(words_a & words_b) / len(words_a | words_b) if words_a and words_b else 0.0

        same_category = report_a.category.lower() == report_b.category.lower()

        score = 0.0
        score += 30 if same_category else 0          # Category (30)
        score += 45 * min(1.0, overlap * 1.5)         # Shared words (45)
        score += 15 * location_similarity(report_a.location, report_b.location)  # Place (15)
        score += 10 * time_proximity(report_a.occurred_at, report_b.occurred_at)  # Time (10)

        # Different categories only match when the descriptions say so loudly
        if not same_category and overlap < 0.5:
            score = min(score, 40)

        return round(min(100.0, score), 1)

    def generate_verification_question(self, found: Report) -> VerificationPair:
        for word in _words(found.description):
            if word in COLORS:
                return VerificationPair(question=f"What color is the {found.item_name.lower()}?",
                                        answer=word)
        return FALLBACK_PAIR

    def validate_answer(self, user_answer: str, expected_answer: str) -> bool:
        expected = [SPELLINGS.get(w, w) for w in _words(expected_answer)]
        given = {SPELLINGS.get(w, w) for w in _words(user_answer)}
        if not expected or not given:
            return False
        # Partial mentions pass as long as every expected word shows up
        return all(word in given for word in expected)
