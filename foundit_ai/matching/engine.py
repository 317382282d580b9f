"""
Matching Engine
---------------
Runs when a report is submitted: scores every open report of the opposite type
and stores a PENDING match for each candidate that clears the threshold.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from ..common.schemas import (ItemStatus, Match, MatchStatus, Report,
                              ReportType, Suggestion)
from ..oracle import SimilarityOracle, bounded_call
from ..store import Store

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 60.0


def _links_open_pair(report_a: str, report_b: str):
    def conflict(match: Match) -> bool:
        return match.status != MatchStatus.REJECTED and match.links(report_a, report_b)
    return conflict


class MatchingEngine:

    def __init__(self, store: Store, oracle: SimilarityOracle,
                 threshold: float = DEFAULT_THRESHOLD, oracle_timeout: float = 30.0):
        self._store = store
        self._oracle = oracle
        self._threshold = threshold
        self._timeout = oracle_timeout

    def _score(self, new_report: Report, candidate: Report) -> float:
        score = bounded_call(self._oracle.score, new_report, candidate,
                             timeout=self._timeout, default=0.0,
                             label=f"score {new_report.id}/{candidate.id}")
        try:
            return max(0.0, min(100.0, float(score)))
        except (TypeError, ValueError):
            logger.warning(f"Oracle returned a non-numeric score: {score!r}")
            return 0.0

    def propose_matches(self, new_report: Report, all_reports: Iterable[Report],
                        existing_matches: Iterable[Match]) -> List[Suggestion]:
        """
        Create and persist a PENDING match for every good candidate.

        Args:
            new_report: The report just submitted
            all_reports: Reports to consider as candidates
            existing_matches: Matches already known to the caller

        Returns:
            Suggestions (new match + counterpart report), best first. Matches
            are stored whether or not the caller shows the suggestions.
        """
        opposite = new_report.type.opposite
        candidates = [r for r in all_reports
                      if r.type == opposite and r.status == ItemStatus.OPEN and r.id != new_report.id]
        known = [m for m in existing_matches if m.status != MatchStatus.REJECTED]

        logger.info(f"Scanning {len(candidates)} {opposite.value} reports for {new_report.id}")

        suggestions: List[Suggestion] = []
        for candidate in candidates:
            score = self._score(new_report, candidate)
            if score < self._threshold:
                continue

            if any(m.links(new_report.id, candidate.id) for m in known):
                logger.info(f"Pair {new_report.id}/{candidate.id} already has an open match")
                continue

            lost, found = ((new_report, candidate) if new_report.type == ReportType.LOST
                           else (candidate, new_report))
            match = Match(lost_report_id=lost.id, found_report_id=found.id, confidence=score)

            if not self._store.insert_unless("matches", match.id, match,
                                             _links_open_pair(lost.id, found.id)):
                continue

            known.append(match)
            suggestions.append(Suggestion(match=match, report=candidate))
            logger.info(f"Match {match.id} created ({lost.id} <-> {found.id}, confidence {score})")

        suggestions.sort(key=lambda s: s.match.confidence, reverse=True)
        return suggestions
