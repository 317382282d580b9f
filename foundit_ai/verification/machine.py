"""
Verification State Machine
--------------------------
PENDING -> VERIFIED on a correct answer, PENDING -> REJECTED once the attempt
cap is reached. Both are terminal.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..common.schemas import (PENDING_FINDER_REPORT, PENDING_OWNER_REPORT,
                              PLACEHOLDER_IDS, ItemStatus, Match, MatchStatus,
                              Report, ReportType)
from ..conversation import ConversationChannel
from ..oracle import SimilarityOracle, bounded_call
from ..store import Store

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2
CLAIM_CONFIDENCE = 100

UNLOCK_MESSAGE = "Verification successful. You may now chat freely."
CLAIM_MESSAGES = (
    "Chat initiated. This conversation is currently in 'Verification Pending' mode.",
    "Owner must provide the correct verification answer to unlock chat.",
)


class VerificationMachine:

    def __init__(self, store: Store, oracle: SimilarityOracle, channel: ConversationChannel,
                 max_attempts: int = MAX_ATTEMPTS, oracle_timeout: float = 30.0):
        self._store = store
        self._oracle = oracle
        self._channel = channel
        self._max_attempts = max_attempts
        self._timeout = oracle_timeout

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def attempts_remaining(self, match: Match) -> int:
        if match.status != MatchStatus.PENDING:
            return 0
        return max(0, self._max_attempts - match.attempts)

    def submit_answer(self, match_id: str, candidate_answer: str) -> bool:
        """
        Judge one answer for a pending match.

        Returns True only when the match is VERIFIED after the call. On False
        the caller re-reads the match status: PENDING means try again,
        REJECTED means the claimant is out.
        """
        match = self._store.get("matches", match_id)
        if match is None:
            logger.info(f"Answer for unknown match {match_id}")
            return False
        if match.status != MatchStatus.PENDING:
            return match.status == MatchStatus.VERIFIED
        if not candidate_answer.strip():
            return False

        found = self._store.get("reports", match.found_report_id)
        if found is None or not found.verification_answer:
            logger.warning(f"Match {match_id} has no stored answer to verify against")
            return False

        is_correct = bounded_call(self._oracle.validate_answer, candidate_answer,
                                  found.verification_answer, timeout=self._timeout,
                                  default=False, label=f"validate {match_id}") is True

        transitioned = []

        def apply(current: Match) -> Optional[Match]:
            if current.status != MatchStatus.PENDING:
                return None
            transitioned.append(True)
            if is_correct:
                return current.model_copy(update={"status": MatchStatus.VERIFIED})
            attempts = current.attempts + 1
            status = MatchStatus.REJECTED if attempts >= self._max_attempts else MatchStatus.PENDING
            return current.model_copy(update={"attempts": attempts, "status": status})

        updated = self._store.update("matches", match_id, apply)
        if not transitioned:
            # Another session settled the match while the oracle was thinking
            return updated is not None and updated.status == MatchStatus.VERIFIED

        if is_correct:
            logger.info(f"Match {match_id} verified")
            self._channel.append_system_message(match_id, UNLOCK_MESSAGE)
            self._mark_matched(updated)
            return True

        if updated.status == MatchStatus.REJECTED:
            logger.info(f"Match {match_id} rejected after {updated.attempts} attempts")
        else:
            logger.info(f"Wrong answer for match {match_id} ({updated.attempts}/{self._max_attempts})")
        return False

    def _mark_matched(self, match: Match) -> None:
        def advance(report: Report) -> Optional[Report]:
            if report.status != ItemStatus.OPEN:
                return None
            return report.model_copy(update={"status": ItemStatus.MATCHED})

        for report_id in match.report_ids:
            self._store.update("reports", report_id, advance)

    def open_claim(self, target: Report, claimant_id: str,
                   own_report: Optional[Report] = None) -> Match:
        """
        Open a chat directly from a report, without the matching engine.

        The match carries full confidence but still starts PENDING with no
        attempts used; it has to pass the same answer gate.
        """
        if own_report is not None:
            lost, found = ((own_report.id, target.id) if own_report.type == ReportType.LOST
                           else (target.id, own_report.id))
        elif target.type == ReportType.FOUND:
            lost, found = PENDING_OWNER_REPORT, target.id
        else:
            lost, found = target.id, PENDING_FINDER_REPORT

        match = Match(lost_report_id=lost, found_report_id=found,
                      confidence=CLAIM_CONFIDENCE, claimant_id=claimant_id)
        has_placeholder = lost in PLACEHOLDER_IDS or found in PLACEHOLDER_IDS

        def conflict(existing: Match) -> bool:
            if existing.status == MatchStatus.REJECTED or not existing.links(lost, found):
                return False
            return not has_placeholder or existing.claimant_id == claimant_id

        if not self._store.insert_unless("matches", match.id, match, conflict):
            existing = next((m for m in self._store.all("matches") if conflict(m)), None)
            if existing is None:
                raise RuntimeError(f"Could not store claim match {match.id}")
            logger.info(f"Reusing match {existing.id} for claim on {target.id}")
            return existing

        for text in CLAIM_MESSAGES:
            self._channel.append_system_message(match.id, text)
        logger.info(f"Claim match {match.id} opened by {claimant_id} on {target.id}")
        return match
