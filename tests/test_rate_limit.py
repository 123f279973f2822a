from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from starlette.requests import Request

from wareworks.core.config import Settings
from wareworks.core.store import ExpiringStore
from wareworks.middleware.rate_limit import (
    API,
    DOWNLOAD,
    SUBMISSION,
    UPLOAD,
    RateLimitConfig,
    RateLimiter,
    RateLimitExceeded,
    build_rate_limiters,
    client_ip,
    sweep_rate_limits,
)


def make_request(headers: dict[str, str] | None = None) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "POST", "path": "/api/submit-application", "headers": raw})


@pytest.fixture
def store(clock):
    return ExpiringStore("rate_limits", clock=clock)


def test_allows_until_max_then_blocks(store, clock):
    limiter = RateLimiter(SUBMISSION, RateLimitConfig(window_seconds=900, max_requests=3), store=store)
    results = [limiter.check_limit("1.2.3.4") for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert results[0].retry_after is None
    assert results[3].retry_after == 900
    assert results[3].reset_time == clock.now + 900


def test_window_resets_after_expiry(store, clock):
    limiter = RateLimiter(SUBMISSION, RateLimitConfig(window_seconds=60, max_requests=1), store=store)
    assert limiter.check_limit("ip").allowed
    assert not limiter.check_limit("ip").allowed

    clock.advance(30)
    assert limiter.check_limit("ip").retry_after == 30

    clock.advance(30)
    result = limiter.check_limit("ip")
    assert result.allowed
    assert result.remaining == 0


def test_limiters_have_separate_namespaces(store):
    limiters = build_rate_limiters(Settings(_env_file=None), store=store)
    download = limiters[DOWNLOAD]
    for _ in range(download.config.max_requests):
        assert download.check_limit("ip").allowed
    assert not download.check_limit("ip").allowed
    assert limiters[API].check_limit("ip").allowed
    assert limiters[UPLOAD].check_limit("ip").allowed


def test_default_classes():
    limiters = build_rate_limiters(Settings(_env_file=None), store=ExpiringStore("x"))
    assert (limiters[SUBMISSION].config.window_seconds, limiters[SUBMISSION].config.max_requests) == (900, 3)
    assert (limiters[API].config.window_seconds, limiters[API].config.max_requests) == (300, 100)
    assert (limiters[UPLOAD].config.window_seconds, limiters[UPLOAD].config.max_requests) == (600, 10)
    assert (limiters[DOWNLOAD].config.window_seconds, limiters[DOWNLOAD].config.max_requests) == (60, 5)


def test_release_undoes_one_count(store):
    limiter = RateLimiter(SUBMISSION, RateLimitConfig(window_seconds=900, max_requests=1), store=store)
    assert limiter.check_limit("ip").allowed
    limiter.release("ip")
    assert limiter.check_limit("ip").allowed


def test_sweep_removes_expired_windows(store, clock):
    limiter = RateLimiter(API, RateLimitConfig(window_seconds=60, max_requests=5), store=store)
    limiter.check_limit("a")
    clock.advance(30)
    limiter.check_limit("b")
    clock.advance(31)

    assert sweep_rate_limits(store) == 1
    assert len(store) == 1


def test_headers_include_retry_after_only_when_blocked(store):
    limiter = RateLimiter(API, RateLimitConfig(window_seconds=60, max_requests=1), store=store)
    allowed = limiter.check_limit("ip").headers()
    blocked = limiter.check_limit("ip").headers()

    assert allowed["X-RateLimit-Limit"] == "1"
    assert allowed["X-RateLimit-Remaining"] == "0"
    assert "Retry-After" not in allowed
    assert blocked["Retry-After"] == "60"


def test_enforce_raises_and_records_state(store):
    limiter = RateLimiter(SUBMISSION, RateLimitConfig(window_seconds=60, max_requests=1, message="slow down"), store=store)
    request = make_request({"x-forwarded-for": "9.9.9.9"})
    limiter.enforce(request)
    assert request.state.rate_limit.allowed

    with pytest.raises(RateLimitExceeded) as excinfo:
        limiter.enforce(make_request({"x-forwarded-for": "9.9.9.9"}))
    assert excinfo.value.message == "slow down"
    assert excinfo.value.result.retry_after == 60


@pytest.mark.parametrize(
    "headers,expected",
    [
        ({"x-forwarded-for": "1.1.1.1, 10.0.0.1"}, "1.1.1.1"),
        ({"x-real-ip": "2.2.2.2"}, "2.2.2.2"),
        ({"x-forwarded-for": "3.3.3.3", "x-real-ip": "2.2.2.2"}, "3.3.3.3"),
        ({}, "unknown"),
    ],
)
def test_client_ip(headers, expected):
    assert client_ip(make_request(headers)) == expected


def test_config_rejects_non_positive_values():
    with pytest.raises(ValueError):
        RateLimitConfig(window_seconds=0, max_requests=1)
    with pytest.raises(ValueError):
        RateLimitConfig(window_seconds=1, max_requests=0)



def test_concurrent_checks_count_every_request(store):
    limiter = RateLimiter(SUBMISSION, RateLimitConfig(window_seconds=900, max_requests=5), store=store)

    def hammer(_):
        return [limiter.check_limit("k").allowed for _ in range(50)]

    with ThreadPoolExecutor(max_workers=16) as pool:
        outcomes = [allowed for batch in pool.map(hammer, range(16)) for allowed in batch]

    assert len(outcomes) == 800
    assert outcomes.count(True) == 5
    assert store.get(f"{SUBMISSION}:ratelimit:k").count == 800
