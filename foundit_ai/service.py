"""
FoundIt service
---------------
Session-scoped entry points that tie reports, matching, verification, chat and
handover together. Every operation takes the acting user's Session explicitly.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from pydantic import BaseModel

from .auth import CampusLogin
from .common.config import Settings
from .common.errors import NotFoundError, PermissionDeniedError, ValidationError
from .common.schemas import (PLACEHOLDER_IDS, SENSITIVE_CATEGORIES, ChatMessage,
                             HandoverRole, ItemStatus, Match, MatchStatus,
                             Report, ReportType, Suggestion, User)
from .conversation import ConversationChannel
from .handover import HandoverProtocol
from .matching import MatchingEngine
from .notifications import (NotificationSink, ReportAnnouncer, build_notifier,
                            safe_notify)
from .oracle import FALLBACK_PAIR, SimilarityOracle, bounded_call, build_oracle
from .store import Store, build_store
from .verification import VerificationMachine

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """The acting user, passed to every operation."""
    user: User

    @property
    def user_id(self) -> str:
        return self.user.id


class ReportDraft(BaseModel):
    type: ReportType
    item_name: str
    category: str = "Other"
    description: str = ""
    location: str = ""
    occurred_at: Optional[str] = None
    image_ref: Optional[str] = None
    is_sensitive: Optional[bool] = None
    verification_question: Optional[str] = None
    verification_answer: Optional[str] = None


class VerificationOutcome(BaseModel):
    success: bool
    status: MatchStatus
    attempts_remaining: int


class FoundItService:

    def __init__(self, store: Store, oracle: SimilarityOracle,
                 notifier: Optional[NotificationSink] = None,
                 settings: Optional[Settings] = None):
        settings = settings or Settings()
        self.settings = settings
        self.store = store
        self.oracle = oracle
        self.notifier = notifier or build_notifier()

        self.channel = ConversationChannel(store)
        self.engine = MatchingEngine(store, oracle, threshold=settings.match_threshold,
                                     oracle_timeout=settings.oracle_timeout)
        self.verification = VerificationMachine(store, oracle, self.channel,
                                                max_attempts=settings.max_verification_attempts,
                                                oracle_timeout=settings.oracle_timeout)
        self.handover = HandoverProtocol(store, self.channel)
        self.announcer = ReportAnnouncer(self.notifier, campus_name=settings.campus_name)
        self.login = CampusLogin(store, campus_domain=settings.campus_domain,
                                 campus_name=settings.campus_name, otp=settings.login_otp)

    @classmethod
    def from_settings(cls, settings: Settings) -> "FoundItService":
        return cls(build_store(settings), build_oracle(settings),
                   build_notifier(settings.notify_webhook_url), settings)

    # ─── lookups ───────────────────────────────────────────────────────────

    def _report(self, report_id: str) -> Report:
        report = self.store.get("reports", report_id)
        if report is None:
            raise NotFoundError(f"Report not found: {report_id}")
        return report

    def _match(self, match_id: str) -> Match:
        match = self.store.get("matches", match_id)
        if match is None:
            raise NotFoundError(f"Match not found: {match_id}")
        return match

    def _owner_of(self, report_id: str) -> Optional[str]:
        if report_id in PLACEHOLDER_IDS:
            return None
        report = self.store.get("reports", report_id)
        return report.owner_id if report else None

    def role_in(self, session: Session, match: Match) -> HandoverRole:
        """FINDER if the user holds the found side, OWNER if the lost side."""
        if self._owner_of(match.found_report_id) == session.user_id:
            return HandoverRole.FINDER
        if self._owner_of(match.lost_report_id) == session.user_id:
            return HandoverRole.OWNER
        if match.claimant_id == session.user_id:
            # The claimant stands in for whichever side has no report yet
            if match.found_report_id in PLACEHOLDER_IDS:
                return HandoverRole.FINDER
            return HandoverRole.OWNER
        raise PermissionDeniedError("You are not part of this match")

    def _involves(self, session: Session, match: Match) -> bool:
        try:
            self.role_in(session, match)
            return True
        except PermissionDeniedError:
            return False

    def match_for(self, session: Session, match_id: str) -> Match:
        match = self._match(match_id)
        self.role_in(session, match)
        return match

    # ─── reports ───────────────────────────────────────────────────────────

    def submit_report(self, session: Session, draft: ReportDraft) -> Tuple[Report, List[Suggestion]]:
        """
        File a report and run the matching engine for it.

        Found reports without an explicit answer get a generated verification
        question. Returns the stored report and the suggestions for the
        submitter, best first.
        """
        if not draft.item_name.strip():
            raise ValidationError("Item name cannot be empty")
        if draft.verification_answer and not draft.verification_question:
            raise ValidationError("A verification answer needs its question")

        category = draft.category.strip() or "Other"
        report = Report(
            owner_id=session.user_id,
            type=draft.type,
            category=category,
            item_name=draft.item_name.strip(),
            description=draft.description.strip(),
            location=draft.location.strip(),
            occurred_at=draft.occurred_at or dt.datetime.now(dt.timezone.utc).isoformat(),
            image_ref=draft.image_ref,
            is_sensitive=(draft.is_sensitive if draft.is_sensitive is not None
                          else category in SENSITIVE_CATEGORIES),
            verification_question=draft.verification_question,
            verification_answer=draft.verification_answer,
        )

        if report.type == ReportType.FOUND and not report.verification_answer:
            pair = bounded_call(self.oracle.generate_verification_question, report,
                                timeout=self.settings.oracle_timeout, default=FALLBACK_PAIR,
                                label=f"question {report.id}")
            report = report.model_copy(update={"verification_question": pair.question,
                                               "verification_answer": pair.answer})

        earlier_reports = self.store.all("reports")
        self.store.put("reports", report.id, report)
        logger.info(f"Report {report.id} filed: {report.type.value} {report.item_name}")

        self.announcer.announce(report)
        suggestions = self.engine.propose_matches(report, earlier_reports, self.store.all("matches"))

        for suggestion in suggestions:
            safe_notify(self.notifier, "Possible match",
                        f"A new {report.type.value.lower()} report may match your "
                        f"{suggestion.report.item_name}.", suggestion.report.id,
                        user_id=suggestion.report.owner_id)
        return report, suggestions

    def feed(self, type_filter: Optional[ReportType] = None, search: str = "") -> List[Report]:
        needle = search.lower().strip()
        reports = [
            r for r in self.store.all("reports")
            if r.status == ItemStatus.OPEN
            and (type_filter is None or r.type == type_filter)
            and (needle in r.item_name.lower() or needle in r.category.lower())
        ]
        return sorted(reports, key=lambda r: r.created_at, reverse=True)

    def my_reports(self, session: Session) -> List[Report]:
        reports = [r for r in self.store.all("reports") if r.owner_id == session.user_id]
        return sorted(reports, key=lambda r: r.created_at, reverse=True)

    def close_report(self, session: Session, report_id: str) -> Report:
        """Withdraw an open report. Closed reports drop out of the feed and matching."""
        report = self._report(report_id)
        if report.owner_id != session.user_id:
            raise PermissionDeniedError("Only the reporter can close a report")

        def close(current: Report) -> Optional[Report]:
            if current.status != ItemStatus.OPEN:
                return None
            return current.model_copy(update={"status": ItemStatus.CLOSED})

        updated = self.store.update("reports", report_id, close)
        if updated.status != ItemStatus.CLOSED:
            raise ValidationError(f"Report is {updated.status.value}, only open reports can be closed")
        return updated

    # ─── matches ───────────────────────────────────────────────────────────

    def claim_suggestion(self, session: Session, match_id: str) -> Match:
        match = self.match_for(session, match_id)
        if match.status != MatchStatus.PENDING:
            raise ValidationError(f"Match is already {match.status.value}")
        self._notify_counterpart(session, match)
        return match

    def open_chat(self, session: Session, report_id: str,
                  own_report_id: Optional[str] = None) -> Match:
        """
        Start a conversation straight from a report in the feed.

        An existing open match between the user and that report is reused.
        Otherwise a claim match is opened. Claims on a found item may leave the
        owner's side as a placeholder. Claims on a lost item must link the
        finder's found report, since its question is what unlocks the chat.
        """
        target = self._report(report_id)
        if target.owner_id == session.user_id:
            raise ValidationError("You cannot open a chat on your own report")

        own = None
        if own_report_id:
            own = self._report(own_report_id)
            if own.owner_id != session.user_id:
                raise PermissionDeniedError("That report belongs to someone else")
            if own.type == target.type:
                raise ValidationError("Link a report of the opposite type")

        for match in self.store.all("matches"):
            if match.status == MatchStatus.REJECTED:
                continue
            if target.id not in (match.lost_report_id, match.found_report_id):
                continue
            other = match.found_report_id if match.lost_report_id == target.id else match.lost_report_id
            if own is not None and other != own.id:
                continue
            if self._owner_of(other) == session.user_id or (
                    other in PLACEHOLDER_IDS and match.claimant_id == session.user_id):
                return match

        if own is None and target.type == ReportType.LOST:
            raise ValidationError("Report the item as found first, then link that report")
        match = self.verification.open_claim(target, session.user_id, own)
        self._notify_counterpart(session, match)
        return match

    def _notify_counterpart(self, session: Session, match: Match) -> None:
        for report_id in match.report_ids:
            owner = self._owner_of(report_id)
            if owner and owner != session.user_id:
                safe_notify(self.notifier, "New Interaction",
                            f"A chat has been started regarding an item you reported on "
                            f"{self.settings.campus_name} Campus.", report_id, user_id=owner)

    def active_matches(self, session: Session) -> List[Match]:
        """Open matches involving the user, most recently active first."""
        matches = [m for m in self.store.all("matches")
                   if m.status != MatchStatus.REJECTED and self._involves(session, m)]
        return sorted(matches, key=lambda m: self.channel.last_activity(m.id), reverse=True)

    def match_detail(self, session: Session, match_id: str) -> dict:
        match = self.match_for(session, match_id)
        role = self.role_in(session, match)
        found = self.store.get("reports", match.found_report_id)
        return {
            "match": match.model_dump(mode="json"),
            "role": role.value,
            "verification_question": found.verification_question if found else None,
            "attempts_remaining": self.verification.attempts_remaining(match),
            "chat_open": self.channel.accepts_user_messages(match.id),
            "closed": self.channel.is_closed(match),
            "handover": self.handover.view_for(match.id, role),
        }

    # ─── verification ──────────────────────────────────────────────────────

    def submit_answer(self, session: Session, match_id: str, answer: str) -> VerificationOutcome:
        match = self.match_for(session, match_id)
        if self.role_in(session, match) != HandoverRole.OWNER:
            raise PermissionDeniedError("Only the owner answers the verification question")

        success = self.verification.submit_answer(match_id, answer)
        match = self._match(match_id)
        return VerificationOutcome(success=success, status=match.status,
                                   attempts_remaining=self.verification.attempts_remaining(match))

    # ─── chat ──────────────────────────────────────────────────────────────

    def send_message(self, session: Session, match_id: str, text: str) -> Optional[ChatMessage]:
        self.match_for(session, match_id)
        return self.channel.send_message(match_id, session.user_id, text)

    def messages(self, session: Session, match_id: str) -> List[ChatMessage]:
        match = self.match_for(session, match_id)
        return self.handover.redact_for(match_id, self.role_in(session, match),
                                        self.channel.history(match_id))

    # ─── handover ──────────────────────────────────────────────────────────

    def initiate_handover(self, session: Session, match_id: str) -> Optional[dict]:
        match = self.match_for(session, match_id)
        if self.handover.initiate(match_id) is None:
            return None
        return self.handover.view_for(match_id, self.role_in(session, match))

    def handover_view(self, session: Session, match_id: str) -> Optional[dict]:
        match = self.match_for(session, match_id)
        return self.handover.view_for(match_id, self.role_in(session, match))

    def confirm_handover(self, session: Session, match_id: str, code: str) -> bool:
        match = self.match_for(session, match_id)
        return self.handover.confirm(match_id, self.role_in(session, match), code)

    # ─── notifications ─────────────────────────────────────────────────────

    def set_muted(self, session: Session, muted: bool) -> User:
        """Mute or unmute campus-wide announcements. Personal alerts still arrive."""
        user = self.store.update("users", session.user_id,
                                 lambda u: u.model_copy(update={"mute_notifications": muted}))
        if user is None:
            raise NotFoundError(f"User not found: {session.user_id}")
        session.user = user
        return user

    def notifications(self, session: Session, since: int = 0) -> List[dict]:
        recent = getattr(self.notifier, "recent", None)
        if recent is None:
            return []
        user = self.store.get("users", session.user_id) or session.user
        return recent(since, user_id=user.id, include_campus=not user.mute_notifications)
