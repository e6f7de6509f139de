# tests/test_worker.py
import hashlib
import hmac

import pytest
import requests

from creativedesk.core.config import settings
from creativedesk.services import notifications
from creativedesk.workers import rq_worker


class _Resp:
    status_code = 204

    def raise_for_status(self):
        return None


@pytest.fixture
def posted(monkeypatch):
    calls = []

    def fake_post(url, data=None, headers=None, timeout=None):
        calls.append({"url": url, "data": data, "headers": headers})
        return _Resp()

    monkeypatch.setattr(requests, "post", fake_post)
    monkeypatch.setattr(settings, "webhook_url", "https://hooks.example.com/desk")
    monkeypatch.setattr(settings, "webhook_secret", "s3cret")
    return calls


def test_status_changed_posts_signed_webhook(posted):
    rq_worker.handle_event("status_changed", {"ticket": {"id": 5}, "from": "IN_PROGRESS", "to": "IN_REVIEW"})

    assert len(posted) == 1
    call = posted[0]
    assert call["headers"]["X-CreativeDesk-Event"] == "ticket.status_changed"
    expected = hmac.new(b"s3cret", call["data"], hashlib.sha256).hexdigest()
    assert call["headers"]["X-CreativeDesk-Signature"] == f"sha256={expected}"


def test_unknown_event_is_ignored(posted):
    rq_worker.handle_event("ticket_archived", {"ticket": {"id": 1}})
    assert posted == []


def test_no_webhook_url_skips_post(posted, monkeypatch):
    monkeypatch.setattr(settings, "webhook_url", None)
    rq_worker.handle_event("ticket_completed", {"ticket": {"id": 1, "title": "Logo"}})
    assert posted == []


def test_webhook_failure_raises_for_retry(monkeypatch):
    class _Failed(_Resp):
        status_code = 500

        def raise_for_status(self):
            raise requests.HTTPError("500")

    monkeypatch.setattr(requests, "post", lambda *a, **kw: _Failed())
    monkeypatch.setattr(settings, "webhook_url", "https://hooks.example.com/desk")
    with pytest.raises(requests.HTTPError):
        rq_worker.handle_event("changes_requested", {"ticket": {"id": 1}, "version": 2, "message": "bigger"})


def test_enqueue_disabled_returns_none(monkeypatch):
    monkeypatch.setattr(settings, "notifications_enabled", False)
    assert notifications.enqueue("status_changed", {}) is None


def test_enqueue_failure_never_raises(monkeypatch):
    def broken_queue():
        raise ConnectionError("redis down")

    monkeypatch.setattr(settings, "notifications_enabled", True)
    monkeypatch.setattr(notifications, "_get_queue", broken_queue)
    assert notifications.enqueue("status_changed", {"ticket": {"id": 1}}) is None


def test_enqueue_targets_worker_handler(monkeypatch):
    jobs = []

    class _Queue:
        def enqueue(self, func, *args, **kwargs):
            jobs.append((func, args, kwargs))
            return type("Job", (), {"id": "job-1"})()

    monkeypatch.setattr(settings, "notifications_enabled", True)
    monkeypatch.setattr(notifications, "_get_queue", lambda: _Queue())
    assert notifications.enqueue("ticket_completed", {"ticket": {"id": 3}}) == "job-1"

    func, args, kwargs = jobs[0]
    assert func == "creativedesk.workers.rq_worker.handle_event"
    assert args == ("ticket_completed", {"ticket": {"id": 3}})
    assert kwargs["retry"].max == 3
