import requests

from foundit_ai import notifications
from foundit_ai.notifications import (InboxNotifier, WebhookNotifier,
                                      build_notifier, safe_notify)


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class TestWebhookNotifier:

    def test_posts_json_payload(self, monkeypatch):
        calls = []

        def fake_post(url, json=None, timeout=None):
            calls.append((url, json, timeout))
            return FakeResponse()
        monkeypatch.setattr(notifications.requests, "post", fake_post)

        WebhookNotifier("http://hooks.test/foundit", timeout=3)._post(
            {"title": "New Interaction", "body": "hi", "report_id": "r1"})

        assert calls == [("http://hooks.test/foundit",
                          {"title": "New Interaction", "body": "hi", "report_id": "r1"}, 3)]

    def test_delivery_errors_are_swallowed(self, monkeypatch):
        monkeypatch.setattr(notifications.requests, "post", lambda *a, **kw: FakeResponse(500))
        WebhookNotifier("http://hooks.test/foundit")._post({"title": "x"})

    def test_connection_errors_are_swallowed(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise requests.ConnectionError("refused")
        monkeypatch.setattr(notifications.requests, "post", refuse)
        WebhookNotifier("http://hooks.test/foundit")._post({"title": "x"})


class TestInbox:

    def test_keeps_only_the_latest(self):
        inbox = InboxNotifier(limit=3)
        for i in range(5):
            inbox.notify(f"alert {i}", "body")
        assert [n["title"] for n in inbox.recent()] == ["alert 2", "alert 3", "alert 4"]

    def test_since_filters_older_items(self):
        inbox = InboxNotifier()
        inbox.notify("old", "body")
        cutoff = inbox.recent()[-1]["created_at"]
        assert all(n["created_at"] > cutoff for n in inbox.recent(since=cutoff))


class TestSafeNotify:

    def test_broken_sink_never_raises(self):
        class Broken:
            def notify(self, title, body, report_id="", user_id=""):
                raise RuntimeError("sink down")
        safe_notify(Broken(), "Possible match", "body", "r1")

    def test_build_notifier(self):
        assert isinstance(build_notifier(None), InboxNotifier)
        assert isinstance(build_notifier("http://hooks.test/foundit"), WebhookNotifier)


class TestRecipients:

    def test_user_sees_own_and_campus_alerts_only(self):
        inbox = InboxNotifier()
        inbox.notify("LOST: Keys", "campus", "r1")
        inbox.notify("Possible match", "for asha", "r2", user_id="u-asha")
        inbox.notify("New Interaction", "for ravi", "r3", user_id="u-ravi")

        titles = [n["title"] for n in inbox.recent(user_id="u-asha")]

        assert titles == ["LOST: Keys", "Possible match"]

    def test_campus_alerts_can_be_left_out(self):
        inbox = InboxNotifier()
        inbox.notify("LOST: Keys", "campus", "r1")
        inbox.notify("Possible match", "for asha", "r2", user_id="u-asha")

        titles = [n["title"] for n in inbox.recent(user_id="u-asha", include_campus=False)]

        assert titles == ["Possible match"]

    def test_webhook_payload_carries_recipient(self, monkeypatch):
        sent = []
        notifier = WebhookNotifier("http://hooks.test/foundit")
        monkeypatch.setattr(notifier, "_post", sent.append)
        monkeypatch.setattr(notifier._pool, "submit", lambda fn, payload: fn(payload))

        notifier.notify("Possible match", "body", "r2", user_id="u-asha")

        assert sent == [{"title": "Possible match", "body": "body", "report_id": "r2",
                         "user_id": "u-asha"}]
