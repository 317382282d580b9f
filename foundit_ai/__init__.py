"""
FoundIt campus lost & found
---------------------------
Public API:

    FoundItService(...)
    Session(user)
    ReportDraft(...)
"""

from .service import FoundItService, ReportDraft, Session, VerificationOutcome  # noqa: F401  (re-export)
