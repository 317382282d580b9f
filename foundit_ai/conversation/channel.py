from __future__ import annotations

import logging
import threading
from typing import List, Optional

from ..common.schemas import (SYSTEM_SENDER, ChatMessage, ItemStatus, Match,
                              MatchStatus)
from ..common.utils import now_ms
from ..store import Store

logger = logging.getLogger(__name__)


class ConversationChannel:
    """
    Append-only message log per match.

    System messages are always accepted. User messages need a VERIFIED match
    whose case has not been closed by a handover.
    """

    def __init__(self, store: Store):
        self._store = store
        self._append_lock = threading.Lock()

    def history(self, match_id: str) -> List[ChatMessage]:
        messages = [m for m in self._store.all("messages") if m.match_id == match_id]
        return sorted(messages, key=lambda m: m.timestamp)

    def last_activity(self, match_id: str) -> int:
        return max((m.timestamp for m in self._store.all("messages") if m.match_id == match_id),
                   default=0)

    def is_closed(self, match: Match) -> bool:
        """True once any concrete report on the match has been handed back."""
        for report_id in match.report_ids:
            report = self._store.get("reports", report_id)
            if report is not None and report.status == ItemStatus.RETURNED:
                return True
        return False

    def accepts_user_messages(self, match_id: str) -> bool:
        match = self._store.get("matches", match_id)
        if match is None or match.status != MatchStatus.VERIFIED:
            return False
        return not self.is_closed(match)

    def _append(self, match_id: str, sender_id: str, text: str) -> ChatMessage:
        with self._append_lock:
            # Strictly increasing timestamps keep ordering total within a match
            timestamp = max(now_ms(), self.last_activity(match_id) + 1)
            message = ChatMessage(match_id=match_id, sender_id=sender_id, text=text,
                                  timestamp=timestamp)
            self._store.put("messages", message.id, message)
        return message

    def append_system_message(self, match_id: str, text: str) -> ChatMessage:
        return self._append(match_id, SYSTEM_SENDER, text)

    def send_message(self, match_id: str, sender_id: str, text: str) -> Optional[ChatMessage]:
        if sender_id == SYSTEM_SENDER:
            logger.info(f"Refused user message on {match_id}: reserved sender id")
            return None
        if not text.strip():
            return None
        if not self.accepts_user_messages(match_id):
            logger.info(f"Refused user message on {match_id}: channel locked or closed")
            return None
        return self._append(match_id, sender_id, text)
