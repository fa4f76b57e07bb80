"""Tests for the cache-backed rate limiter."""

from unittest.mock import patch

import pytest
from django.http import JsonResponse
from django.test import RequestFactory, override_settings
from django.views import View

from django_conference.ratelimit import RateLimiter, RateLimitMixin, RateLimitResult, client_ip


class _LimitedView(RateLimitMixin, View):
    rate_limit_scope = "test"

    def get(self, request):
        return JsonResponse({"ok": True})


@pytest.fixture
def rf():
    return RequestFactory()


class TestRateLimiter:
    def test_allows_up_to_budget(self):
        limiter = RateLimiter(window_seconds=60, max_requests=3, prefix="unit")

        results = [limiter.check("1.2.3.4") for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[-1].current == 3

    def test_identifiers_are_independent(self):
        limiter = RateLimiter(window_seconds=60, max_requests=1, prefix="unit")
        assert limiter.check("a").allowed
        assert limiter.check("b").allowed
        assert not limiter.check("a").allowed

    def test_prefixes_are_independent(self):
        RateLimiter(60, 1, prefix="one").check("ip")
        assert RateLimiter(60, 1, prefix="two").check("ip").allowed

    def test_new_window_resets(self):
        limiter = RateLimiter(window_seconds=60, max_requests=1, prefix="unit")
        with patch("django_conference.ratelimit.time.time", return_value=1000.0):
            limiter.check("ip")
            assert not limiter.check("ip").allowed
        with patch("django_conference.ratelimit.time.time", return_value=1080.0):
            assert limiter.check("ip").allowed

    def test_peek_and_reset(self):
        limiter = RateLimiter(window_seconds=60, max_requests=2, prefix="unit")
        assert limiter.peek("ip") is None

        limiter.check("ip")
        peeked = limiter.peek("ip")
        assert peeked.current == 1
        assert peeked.remaining == 1
        assert peeked.allowed is True

        limiter.reset("ip")
        assert limiter.peek("ip") is None

    def test_retry_after_is_at_least_one_second(self):
        with patch("django_conference.ratelimit.time.time", return_value=100.0):
            assert RateLimitResult(allowed=False, remaining=0, reset_at=100.2, current=1).retry_after == 1
            assert RateLimitResult(allowed=False, remaining=0, reset_at=130.0, current=1).retry_after == 30


class TestClientIp:
    def test_forwarded_for_first_hop(self, rf):
        request = rf.get("/", HTTP_X_FORWARDED_FOR="9.9.9.9, 10.0.0.1")
        assert client_ip(request) == "9.9.9.9"

    def test_real_ip(self, rf):
        assert client_ip(rf.get("/", HTTP_X_REAL_IP=" 8.8.8.8 ")) == "8.8.8.8"

    def test_remote_addr(self, rf):
        assert client_ip(rf.get("/", REMOTE_ADDR="7.7.7.7")) == "7.7.7.7"


class TestRateLimitMixin:
    @override_settings(DJANGO_CONFERENCE={"rate_limit": {"max_requests": 1, "window_seconds": 30}})
    def test_returns_429_with_retry_after(self, rf):
        view = _LimitedView.as_view()
        assert view(rf.get("/")).status_code == 200

        response = view(rf.get("/"))

        assert response.status_code == 429
        assert 1 <= int(response["Retry-After"]) <= 30

    @override_settings(DJANGO_CONFERENCE={"rate_limit": {"enabled": False, "max_requests": 1}})
    def test_disabled(self, rf):
        view = _LimitedView.as_view()
        assert [view(rf.get("/")).status_code for _ in range(3)] == [200, 200, 200]
