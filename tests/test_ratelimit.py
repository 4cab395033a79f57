import time

import pytest

from tradedesk.config import Settings
from tradedesk.ratelimit import RateLimiter


def test_fixed_window_counts_per_key():
    limiter = RateLimiter(limit=2, window_seconds=60)
    assert limiter.check("a")
    assert limiter.check("a")
    assert not limiter.check("a")
    assert limiter.check("b")


def test_window_resets(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(time, "monotonic", lambda: now[0])
    limiter = RateLimiter(limit=1, window_seconds=10)
    assert limiter.check("k")
    assert not limiter.check("k")
    now[0] += 10
    assert limiter.check("k")


def test_expired_windows_are_evicted(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(time, "monotonic", lambda: now[0])
    limiter = RateLimiter(limit=5, window_seconds=10)
    for client in ("10.0.0.1", "10.0.0.2", "10.0.0.3"):
        limiter.check(client)
    assert len(limiter._counters) == 3

    now[0] += 11
    limiter.check("10.0.0.4")
    assert set(limiter._counters) == {"10.0.0.4"}


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", jwt_secret="test-secret", chat_rate_limit=2)


def test_message_route_is_rate_limited(buyer, conversation):
    body = {"conversation_id": conversation["conversation_id"], "content": "hi"}
    assert buyer.post("/api/v1/chat/messages", json=body).status_code == 201
    assert buyer.post("/api/v1/chat/messages", json=body).status_code == 201
    r = buyer.post("/api/v1/chat/messages", json=body)
    assert r.status_code == 429
    assert r.json()["detail"] == "Too many requests, slow down"
    # other routes are unaffected
    assert buyer.get(f"/api/v1/chat/conversations/{conversation['conversation_id']}/messages").status_code == 200
