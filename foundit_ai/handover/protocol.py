"""
Handover Protocol
-----------------
no handover -> initiated (code issued) -> one side confirmed -> closed.

Only the finder is shown the code; the owner types it in after receiving the
item. The owner's confirmation is what closes the case.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Union

from ..common.schemas import (ChatMessage, Handover, HandoverRole, ItemStatus,
                              MatchStatus, Report)
from ..common.utils import handover_code
from ..conversation import ConversationChannel
from ..store import Store

logger = logging.getLogger(__name__)

STARTED_MESSAGE = "Handover initiated. Finder code for Owner: {code}"
CLOSED_MESSAGE = "Item successfully handed over. This chat is now closed."
CODE_MASK = "******"


class HandoverProtocol:

    def __init__(self, store: Store, channel: ConversationChannel):
        self._store = store
        self._channel = channel
        self._close_lock = threading.Lock()

    def get(self, match_id: str) -> Optional[Handover]:
        return self._store.get("handovers", match_id)

    def initiate(self, match_id: str) -> Optional[Handover]:
        """Issue a code for a verified match. Returns the existing handover if one is running."""
        match = self._store.get("matches", match_id)
        if match is None or match.status != MatchStatus.VERIFIED:
            logger.info(f"Handover refused for {match_id}: match not verified")
            return None
        if self._channel.is_closed(match):
            logger.info(f"Handover refused for {match_id}: case already closed")
            return None

        handover = Handover(match_id=match_id, code=handover_code())
        if not self._store.insert_unless("handovers", match_id, handover, lambda _: False):
            return self.get(match_id)

        self._channel.append_system_message(match_id, STARTED_MESSAGE.format(code=handover.code))
        logger.info(f"Handover initiated for match {match_id}")
        return handover

    def confirm(self, match_id: str, role: Union[HandoverRole, str], provided_code: str) -> bool:
        """
        Record one side's confirmation.

        A wrong code is ignored and leaves the record untouched. Returns True
        when the code was accepted.
        """
        role = HandoverRole(role)
        code = (provided_code or "").strip().upper()
        flag = "is_confirmed_by_owner" if role == HandoverRole.OWNER else "is_confirmed_by_finder"

        def apply(current: Handover) -> Optional[Handover]:
            if not code or code != current.code or getattr(current, flag):
                return None
            return current.model_copy(update={flag: True})

        updated = self._store.update("handovers", match_id, apply)
        if updated is None:
            return False
        if code != updated.code:
            logger.info(f"Wrong handover code for match {match_id} ({role.value})")
            return False

        logger.info(f"Handover for {match_id} confirmed by {role.value}")
        if updated.is_confirmed_by_owner:
            self._close(match_id)
        return True

    def _close(self, match_id: str) -> None:
        match = self._store.get("matches", match_id)
        if match is None:
            return

        returned = []

        def mark_returned(report: Report) -> Optional[Report]:
            if report.status == ItemStatus.RETURNED:
                return None
            returned.append(report.id)
            return report.model_copy(update={"status": ItemStatus.RETURNED})

        with self._close_lock:
            for report_id in match.report_ids:
                self._store.update("reports", report_id, mark_returned)
            if returned:
                self._channel.append_system_message(match_id, CLOSED_MESSAGE)
                logger.info(f"Match {match_id} closed, reports returned: {returned}")

    def view_for(self, match_id: str, role: Union[HandoverRole, str]) -> Optional[dict]:
        """Handover state as one party may see it. Only the finder gets the code."""
        handover = self.get(match_id)
        if handover is None:
            return None
        view = handover.model_dump(mode="json")
        if HandoverRole(role) != HandoverRole.FINDER:
            view["code"] = None
        return view

    def redact_for(self, match_id: str, role: Union[HandoverRole, str],
                   messages: List[ChatMessage]) -> List[ChatMessage]:
        """Chat history as one party may see it. The owner gets the code masked out."""
        if HandoverRole(role) == HandoverRole.FINDER:
            return messages
        handover = self.get(match_id)
        if handover is None:
            return messages
        return [m.model_copy(update={"text": m.text.replace(handover.code, CODE_MASK)})
                if m.is_system and handover.code in m.text else m
                for m in messages]
