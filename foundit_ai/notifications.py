"""
Notification sinks
------------------
Fire-and-forget alerts keyed to a report id and addressed to one user, or to
the whole campus when user_id is empty. Nothing here may hold up or break
the core protocol: delivery errors are logged and dropped.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Protocol

import requests

from .common.schemas import Report
from .common.utils import new_id, now_ms

logger = logging.getLogger(__name__)

BURST_WINDOW_MS = 5000
MAX_INBOX = 200


class NotificationSink(Protocol):
    def notify(self, title: str, body: str, report_id: str = "", user_id: str = "") -> None: ...


class InboxNotifier:
    """Keeps recent alerts in memory for clients to poll, newest last."""

    def __init__(self, limit: int = MAX_INBOX):
        self._items: List[Dict] = []
        self._limit = limit
        self._lock = threading.Lock()

    def notify(self, title: str, body: str, report_id: str = "", user_id: str = "") -> None:
        with self._lock:
            self._items.append({"id": new_id(), "title": title, "body": body,
                                "report_id": report_id, "user_id": user_id,
                                "created_at": now_ms()})
            del self._items[:-self._limit]

    def recent(self, since: int = 0, user_id: Optional[str] = None,
               include_campus: bool = True) -> List[Dict]:
        """
        Alerts newer than `since`. With a user_id, only that user's alerts
        plus campus-wide ones (unless include_campus is False).
        """
        with self._lock:
            items = [item for item in self._items if item["created_at"] > since]
        if user_id is None:
            return items
        return [item for item in items
                if item["user_id"] == user_id or (include_campus and not item["user_id"])]


class WebhookNotifier:
    """POSTs each alert as JSON to a webhook on a background thread."""

    def __init__(self, url: str, timeout: float = 10.0):
        self._url = url
        self._timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify")

    def _post(self, payload: Dict) -> None:
        try:
            response = requests.post(self._url, json=payload, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Webhook notification failed: {e}")

    def notify(self, title: str, body: str, report_id: str = "", user_id: str = "") -> None:
        self._pool.submit(self._post, {"title": title, "body": body, "report_id": report_id,
                                       "user_id": user_id})


def safe_notify(sink: NotificationSink, title: str, body: str, report_id: str = "",
                user_id: str = "") -> None:
    try:
        sink.notify(title, body, report_id, user_id)
    except Exception as e:
        logger.warning(f"Notification dropped ({title}): {e}")


class ReportAnnouncer:
    """
    Announces new reports campus-wide.

    Several reports inside one burst window collapse into a single
    "Multiple Reports Submitted" notice instead of one alert each.
    """

    def __init__(self, sink: NotificationSink, campus_name: str = "Shirpur",
                 window_ms: int = BURST_WINDOW_MS, clock: Callable[[], int] = now_ms):
        self._sink = sink
        self._campus = campus_name
        self._window = window_ms
        self._clock = clock
        self._last_time = 0
        self._burst_count = 0
        self._lock = threading.Lock()

    def announce(self, report: Report) -> None:
        with self._lock:
            now = self._clock()
            if now - self._last_time < self._window:
                self._burst_count += 1
                send: Optional[tuple] = None
                if self._burst_count == 1:
                    send = ("Multiple Reports Submitted", f"New activity on {self._campus} Campus.", "")
            else:
                self._last_time = now
                self._burst_count = 0
                send = (f"{report.type.value}: {report.item_name}",
                        f"New report near {report.location}.", report.id)
        if send:
            safe_notify(self._sink, *send)


def build_notifier(webhook_url: Optional[str] = None) -> NotificationSink:
    if webhook_url:
        return WebhookNotifier(webhook_url)
    return InboxNotifier()
