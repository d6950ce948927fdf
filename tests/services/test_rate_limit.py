"""Tests for the sliding-window rate limiter."""

import pytest

from wiki_contrib.services.rate_limit import RateLimiter


@pytest.fixture()
def limiter(memory_store, clock) -> RateLimiter:
    return RateLimiter(memory_store, scope="test", clock=clock)


def test_allows_up_to_the_limit_then_rejects(limiter):
    for expected_remaining in (4, 3, 2, 1, 0):
        decision = limiter.check_and_record("id", 5, 3600)
        assert decision.allowed is True
        assert decision.remaining == expected_remaining

    rejected = limiter.check_and_record("id", 5, 3600)
    assert rejected.allowed is False
    assert rejected.remaining == 0


def test_retry_after_counts_from_oldest_action(limiter, clock):
    for _ in range(5):
        limiter.check_and_record("id", 5, 3600)
        clock.advance(60)

    decision = limiter.check_and_record("id", 5, 3600)
    assert decision.allowed is False
    assert decision.retry_after == pytest.approx(3600 - 300)
    assert decision.retry_after_seconds == 3300


def test_rejected_actions_are_not_recorded(limiter, clock):
    for _ in range(5):
        limiter.check_and_record("id", 5, 3600)
    for _ in range(3):
        assert limiter.check_and_record("id", 5, 3600).allowed is False
    assert limiter.count("id", 3600) == 5


def test_window_slides(limiter, clock):
    for _ in range(5):
        limiter.check_and_record("id", 5, 3600)
    clock.advance(3600)
    assert limiter.check_and_record("id", 5, 3600).allowed is True


def test_check_only_does_not_consume(limiter):
    for _ in range(10):
        assert limiter.check("id", 1, 60).allowed is True
    assert limiter.count("id", 60) == 0


def test_record_consumes_a_slot(limiter):
    limiter.record("id", 60)
    assert limiter.check("id", 1, 60).allowed is False


def test_identities_and_scopes_are_independent(limiter, memory_store, clock):
    limiter.record("a", 60)
    assert limiter.check("b", 1, 60).allowed is True
    other_scope = RateLimiter(memory_store, scope="other", clock=clock)
    assert other_scope.check("a", 1, 60).allowed is True


def test_limit_above_history_cap_is_refused(limiter):
    with pytest.raises(ValueError):
        limiter.check_and_record("id", 11, 60)


def test_history_is_capped(memory_store, clock):
    limiter = RateLimiter(memory_store, scope="cap", max_history=3, clock=clock)
    for _ in range(6):
        limiter.record("id", 3600)
        clock.advance(1)
    assert limiter.count("id", 3600) == 3


def test_malformed_window_resets(limiter, memory_store):
    memory_store.put("ratelimit:test:id", "garbage", 60)
    assert limiter.check("id", 1, 60).allowed is True


def test_explicit_zero_history_is_not_replaced_by_default(memory_store, clock):
    limiter = RateLimiter(memory_store, scope="none", max_history=0, clock=clock)
    with pytest.raises(ValueError):
        limiter.check_and_record("id", 1, 60)
