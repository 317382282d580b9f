"""Shared fixtures and helpers for the FoundIt test suite."""

import pytest

from foundit_ai import FoundItService, Session
from foundit_ai.common.config import Settings
from foundit_ai.common.schemas import (Match, Report, ReportType, User,
                                       VerificationPair)
from foundit_ai.conversation import ConversationChannel
from foundit_ai.handover import HandoverProtocol
from foundit_ai.matching import MatchingEngine
from foundit_ai.notifications import InboxNotifier
from foundit_ai.store import MemoryStore
from foundit_ai.verification import VerificationMachine


class StubOracle:
    """
    Deterministic oracle.

    Scores are scripted per pair of item names; answers match when equal
    ignoring case and surrounding whitespace.
    """

    def __init__(self, default_score: float = 0.0):
        self.default_score = default_score
        self.scores = {}
        self.failing = set()
        self.pair = VerificationPair(question="What color is the strap?", answer="blue")
        self.score_calls = []
        self.validate_calls = []

    def set_score(self, name_a: str, name_b: str, score: float) -> None:
        self.scores[frozenset((name_a, name_b))] = score

    def score(self, report_a, report_b):
        self.score_calls.append((report_a.id, report_b.id))
        if report_a.item_name in self.failing or report_b.item_name in self.failing:
            raise ConnectionError("oracle unavailable")
        return self.scores.get(frozenset((report_a.item_name, report_b.item_name)),
                               self.default_score)

    def generate_verification_question(self, found):
        return self.pair

    def validate_answer(self, user_answer, expected_answer):
        self.validate_calls.append((user_answer, expected_answer))
        return user_answer.strip().lower() == expected_answer.strip().lower()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def oracle():
    return StubOracle()


@pytest.fixture
def channel(store):
    return ConversationChannel(store)


@pytest.fixture
def engine(store, oracle):
    return MatchingEngine(store, oracle, threshold=60, oracle_timeout=5)


@pytest.fixture
def verification(store, oracle, channel):
    return VerificationMachine(store, oracle, channel, max_attempts=2, oracle_timeout=5)


@pytest.fixture
def handover(store, channel):
    return HandoverProtocol(store, channel)


@pytest.fixture
def inbox():
    return InboxNotifier()


@pytest.fixture
def service(store, oracle, inbox):
    return FoundItService(store, oracle, inbox, Settings(oracle_timeout=5, log_file=None))


def _make_user(store, name: str) -> Session:
    user = User(name=name, email=f"{name.lower()}@nmims.in", campus="Shirpur", is_verified=True)
    store.put("users", user.id, user)
    return Session(user=user)


@pytest.fixture
def owner(store):
    return _make_user(store, "Asha")


@pytest.fixture
def finder(store):
    return _make_user(store, "Ravi")


@pytest.fixture
def stranger(store):
    return _make_user(store, "Meera")


def _make_report(store=None, **kwargs) -> Report:
    """Create (and optionally store) a Report with defaults."""
    defaults = {
        "owner_id": "u-owner",
        "type": ReportType.LOST,
        "category": "Wallet/Bags",
        "item_name": "Blue Backpack",
        "description": "Blue backpack with a laptop",
        "location": "Library",
        "occurred_at": "2026-10-18T10:00:00+00:00",
    }
    defaults.update(kwargs)
    if defaults["type"] == ReportType.FOUND and "verification_answer" not in kwargs:
        defaults["verification_question"] = "What color is the strap?"
        defaults["verification_answer"] = "blue"
    report = Report(**defaults)
    if store is not None:
        store.put("reports", report.id, report)
    return report


def _verified_match(store, lost: Report, found: Report) -> Match:
    """Store a match that has already passed verification."""
    match = Match(lost_report_id=lost.id, found_report_id=found.id, confidence=90,
                  status="VERIFIED")
    store.put("matches", match.id, match)
    return match
