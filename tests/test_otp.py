import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_user
from souq import auth
from souq.errors import TooManyRequests
from souq.otp import (
    InMemoryCounterStore, OtpRateLimiter, generate_otp, hash_otp, is_expired, is_valid_format, otp_expiry, verify_otp,
)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_generate_otp_is_six_digits():
    codes = {generate_otp() for _ in range(50)}
    assert all(len(c) == 6 and c.isdigit() and c[0] != "0" for c in codes)
    assert len(codes) > 1


def test_verify_otp():
    otp = "123456"
    stored = hash_otp(otp)
    assert stored != otp
    assert verify_otp(otp, stored, otp_expiry(10))
    assert not verify_otp("654321", stored, otp_expiry(10))
    assert not verify_otp(otp, stored, datetime.now(timezone.utc) - timedelta(seconds=1))
    assert not verify_otp(otp, None, otp_expiry(10))
    assert not verify_otp("12345a", hash_otp("12345a"), otp_expiry(10))


def test_format_and_expiry_helpers():
    assert is_valid_format("000111")
    assert not is_valid_format("1234567")
    assert not is_valid_format(None)
    assert is_expired(None)
    assert not is_expired((datetime.now(timezone.utc) + timedelta(minutes=1)).replace(tzinfo=None))


def test_rate_limiter_window():
    clock = FakeClock()
    limiter = OtpRateLimiter(InMemoryCounterStore(), max_requests=5, window_minutes=15, clock=clock)

    async def scenario():
        for expected_remaining in (4, 3, 2, 1, 0):
            assert await limiter.consume("Alice@Example.com") == expected_remaining
            clock.now += 10

        with pytest.raises(TooManyRequests) as exc:
            await limiter.consume("alice@example.com")
        assert 0 < exc.value.retry_after <= 15 * 60
        assert exc.value.message_key == "auth.too_many_otp_requests"

        # other identifiers are independent
        assert await limiter.consume("bob@example.com") == 4

        # the oldest hit leaves the window; the refused one was not recorded
        clock.now += 15 * 60 - 45
        assert await limiter.consume("alice@example.com") == 0

        await limiter.clear("alice@example.com")
        assert await limiter.consume("alice@example.com") == 4

    asyncio.run(scenario())


def test_attempts_are_counted_per_purpose():
    clock = FakeClock()
    limiter = OtpRateLimiter(InMemoryCounterStore(), max_attempts=2, clock=clock)

    async def scenario():
        assert await limiter.consume_attempt("alice@example.com", "verify") == 1
        assert await limiter.consume_attempt("alice@example.com", "verify") == 0
        with pytest.raises(TooManyRequests) as exc:
            await limiter.consume_attempt("alice@example.com", "verify")
        assert exc.value.message_key == "auth.too_many_otp_attempts"

        # issuing codes and resetting passwords have their own counters
        assert await limiter.consume_attempt("alice@example.com", "reset") == 1
        assert await limiter.consume("alice@example.com") == 4

        await limiter.clear_attempts("alice@example.com", "verify")
        assert await limiter.consume_attempt("alice@example.com", "verify") == 1

    asyncio.run(scenario())


def test_concurrent_resends_respect_the_limit(store, mailer, settings):
    make_user(store, "carol@example.com", name="Carol", verified=False)
    limiter = OtpRateLimiter(InMemoryCounterStore(), max_requests=5, window_minutes=15)

    async def burst():
        return await asyncio.gather(*[
            auth.resend_verification(store, mailer, limiter, settings, "carol@example.com")
            for _ in range(20)
        ], return_exceptions=True)

    results = asyncio.run(burst())
    limited = [r for r in results if isinstance(r, TooManyRequests)]
    assert len(limited) == 15
    assert sum(r is None for r in results) == 5
    assert len(mailer.sent) == 5


def test_resend_verification_is_rate_limited(client, store, mailer):
    r = client.post("/api/v1/auth/register", json={
        "name": "Carol", "email": "carol@example.com", "password": "password123",
    })
    assert r.status_code == 201

    statuses = [
        client.post("/api/v1/auth/resend-verification", json={"email": "carol@example.com"}).status_code
        for _ in range(5)
    ]
    # registration used one of the five requests in the window
    assert statuses == [200, 200, 200, 200, 429]

    r = client.post("/api/v1/auth/resend-verification", json={"email": "carol@example.com"},
                    headers={"Accept-Language": "en"})
    assert r.status_code == 429
    assert r.json()["code"] == "TOO_MANY_REQUESTS"
    assert int(r.headers["Retry-After"]) > 0


def test_successful_verification_clears_counter(client, mailer):
    client.post("/api/v1/auth/register", json={"name": "Dan", "email": "dan@example.com", "password": "password123"})
    for _ in range(3):
        client.post("/api/v1/auth/resend-verification", json={"email": "dan@example.com"})
    otp = mailer.last_otp("dan@example.com")

    r = client.post("/api/v1/auth/verify-email", json={"email": "dan@example.com", "otp": otp})
    assert r.status_code == 200

    # counter cleared: a fresh reset flow is allowed five times again
    statuses = [
        client.post("/api/v1/auth/forgot-password", json={"email": "dan@example.com"}).status_code
        for _ in range(5)
    ]
    assert statuses == [200] * 5
