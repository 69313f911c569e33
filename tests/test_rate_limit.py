import pytest
from starlette.requests import Request

from app.config import get_settings
from app.core.exceptions import RateLimited
from app.core.rate_limit import InMemoryRateLimitStore, RateLimiter, client_ip


@pytest.fixture()
def limiter():
    return RateLimiter(InMemoryRateLimitStore(), max_attempts=3, window_seconds=60)


async def test_attempts_within_budget_pass(limiter):
    for _ in range(3):
        await limiter.check("oauth:1.2.3.4")


async def test_attempt_over_budget_is_rejected_with_retry_after(limiter):
    for _ in range(3):
        await limiter.check("oauth:1.2.3.4")

    with pytest.raises(RateLimited) as exc_info:
        await limiter.check("oauth:1.2.3.4")

    assert exc_info.value.status_code == 429
    retry_after = int(exc_info.value.headers["Retry-After"])
    assert 1 <= retry_after <= 60


async def test_keys_are_counted_separately(limiter):
    for _ in range(3):
        await limiter.check("oauth:1.2.3.4")

    await limiter.check("oauth:5.6.7.8")


async def test_reset_clears_the_window():
    store = InMemoryRateLimitStore()
    limiter = RateLimiter(store, max_attempts=1, window_seconds=60)
    await limiter.check("oauth:1.2.3.4")

    await store.reset("oauth:1.2.3.4")

    await limiter.check("oauth:1.2.3.4")


async def test_window_expiry_starts_a_new_count():
    clock = {"now": 1000.0}
    limiter = RateLimiter(InMemoryRateLimitStore(clock=lambda: clock["now"]), max_attempts=1, window_seconds=60)

    await limiter.check("oauth:1.2.3.4")
    clock["now"] += 61

    await limiter.check("oauth:1.2.3.4")


def _request(forwarded_for=None, peer=("203.0.113.7", 4711)):
    headers = []
    if forwarded_for is not None:
        headers.append((b"x-forwarded-for", forwarded_for.encode("latin-1")))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": peer})


def test_client_ip_ignores_forwarded_for_by_default():
    assert client_ip(_request("1.1.1.1")) == "203.0.113.7"


def test_client_ip_uses_proxy_appended_entry_when_trusted(monkeypatch):
    monkeypatch.setattr(get_settings(), "trust_proxy_headers", True)

    assert client_ip(_request("1.1.1.1, 198.51.100.4")) == "198.51.100.4"
    assert client_ip(_request()) == "203.0.113.7"


def test_client_ip_without_peer_is_unknown():
    assert client_ip(_request(peer=None)) == "unknown"
