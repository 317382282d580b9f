from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .utils import new_id, now_ms

SYSTEM_SENDER = "SYSTEM"
PENDING_OWNER_REPORT = "PENDING_OWNER_REPORT"
PENDING_FINDER_REPORT = "PENDING_FINDER_REPORT"
PLACEHOLDER_IDS = {PENDING_OWNER_REPORT, PENDING_FINDER_REPORT}

CATEGORIES = ["Electronics", "ID Cards", "Wallet/Bags", "Keys",
              "Stationery", "Clothing", "Books", "Other"]
SENSITIVE_CATEGORIES = {"ID Cards", "Wallet/Bags"}


class ReportType(str, Enum):
    LOST = "LOST"
    FOUND = "FOUND"

    @property
    def opposite(self) -> "ReportType":
        return ReportType.FOUND if self is ReportType.LOST else ReportType.LOST


class ItemStatus(str, Enum):
    OPEN = "OPEN"
    MATCHED = "MATCHED"
    RETURNED = "RETURNED"
    CLOSED = "CLOSED"


class MatchStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class HandoverRole(str, Enum):
    OWNER = "OWNER"
    FINDER = "FINDER"


class User(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    email: str
    campus: str
    is_verified: bool = False
    mute_notifications: bool = False


class Report(BaseModel):
    id: str = Field(default_factory=new_id)
    owner_id: str
    type: ReportType
    category: str = "Other"
    item_name: str
    description: str = ""
    location: str = ""
    occurred_at: str
    image_ref: Optional[str] = None
    is_sensitive: bool = False
    status: ItemStatus = ItemStatus.OPEN
    created_at: int = Field(default_factory=now_ms)
    verification_question: Optional[str] = None
    verification_answer: Optional[str] = None

    def public_view(self) -> dict:
        """Everything a user may see. The verification answer never leaves the system."""
        return self.model_dump(mode="json", exclude={"verification_answer"})


class Match(BaseModel):
    id: str = Field(default_factory=new_id)
    lost_report_id: str
    found_report_id: str
    confidence: float = Field(ge=0, le=100)
    status: MatchStatus = MatchStatus.PENDING
    attempts: int = 0
    claimant_id: Optional[str] = None
    created_at: int = Field(default_factory=now_ms)

    @model_validator(mode="after")
    def _one_side_concrete(self) -> "Match":
        if self.lost_report_id in PLACEHOLDER_IDS and self.found_report_id in PLACEHOLDER_IDS:
            raise ValueError("a match needs at least one concrete report")
        return self

    @property
    def report_ids(self) -> list[str]:
        """Linked report ids that refer to real reports."""
        return [rid for rid in (self.lost_report_id, self.found_report_id)
                if rid not in PLACEHOLDER_IDS]

    def links(self, report_a: str, report_b: str) -> bool:
        return {self.lost_report_id, self.found_report_id} == {report_a, report_b}


class ChatMessage(BaseModel):
    id: str = Field(default_factory=new_id)
    match_id: str
    sender_id: str
    text: str
    timestamp: int = Field(default_factory=now_ms)

    @property
    def is_system(self) -> bool:
        return self.sender_id == SYSTEM_SENDER


class Handover(BaseModel):
    match_id: str
    code: str
    is_confirmed_by_owner: bool = False
    is_confirmed_by_finder: bool = False


class Suggestion(BaseModel):
    """A freshly proposed match paired with the report on the other side."""
    match: Match
    report: Report


class VerificationPair(BaseModel):
    question: str
    answer: str
