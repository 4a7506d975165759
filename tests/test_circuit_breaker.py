"""Tests for circuit breaker module."""

import pytest

from maildispatch.utils.circuit_breaker import CircuitBreaker, CircuitState


class TestCircuitBreaker:
    """Tests for CircuitBreaker state machine."""

    def test_initial_state_closed(self, clock):
        cb = CircuitBreaker("test", threshold=3, cooldown=1.0, clock=clock)
        assert cb.state == CircuitState.CLOSED
        assert cb.should_allow() is True

    def test_stays_closed_under_threshold(self, clock):
        cb = CircuitBreaker("test", threshold=3, cooldown=1.0, clock=clock)
        cb.record_failure(Exception("e1"))
        cb.record_failure(Exception("e2"))
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 2
        assert cb.should_allow() is True

    def test_opens_at_threshold(self, clock):
        cb = CircuitBreaker("test", threshold=3, cooldown=60.0, clock=clock)
        for i in range(3):
            cb.record_failure(Exception(f"e{i}"))
        assert cb.state == CircuitState.OPEN
        assert cb.is_open
        assert cb.opened_at == clock.now

    def test_rejects_when_open(self, clock):
        cb = CircuitBreaker("test", threshold=1, cooldown=60.0, clock=clock)
        cb.record_failure(Exception("fail"))
        assert cb.should_allow() is False
        assert cb.total_rejections == 1

    def test_still_open_just_before_cooldown(self, clock):
        cb = CircuitBreaker("test", threshold=1, cooldown=10.0, clock=clock)
        cb.record_failure()
        clock.advance(9.99)
        assert cb.should_allow() is False
        assert cb.state == CircuitState.OPEN

    def test_closes_on_check_after_cooldown(self, clock):
        cb = CircuitBreaker("test", threshold=2, cooldown=10.0, clock=clock)
        cb.record_failure()
        cb.record_failure()
        clock.advance(10.0)
        # Reading state alone does not close the breaker
        assert cb.state == CircuitState.OPEN
        assert cb.should_allow() is True
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0
        assert cb.opened_at is None

    def test_failures_accumulate_again_after_reset(self, clock):
        cb = CircuitBreaker("test", threshold=2, cooldown=5.0, clock=clock)
        cb.record_failure()
        cb.record_failure()
        clock.advance(5.0)
        assert cb.should_allow() is True

        cb.record_failure()
        assert cb.state == CircuitState.CLOSED
        cb.record_failure()
        assert cb.state == CircuitState.OPEN

    def test_success_resets_count_but_not_open_state(self, clock):
        cb = CircuitBreaker("test", threshold=1, cooldown=60.0, clock=clock)
        cb.record_failure()
        cb.record_success()
        assert cb.failure_count == 0
        assert cb.state == CircuitState.OPEN
        assert cb.should_allow() is False

    def test_success_resets_count_when_closed(self, clock):
        cb = CircuitBreaker("test", threshold=3, cooldown=1.0, clock=clock)
        cb.record_failure()
        cb.record_failure()
        cb.record_success()
        cb.record_failure()
        assert cb.failure_count == 1
        assert cb.state == CircuitState.CLOSED

    def test_failure_while_open_restamps_opened_at(self, clock):
        cb = CircuitBreaker("test", threshold=1, cooldown=10.0, clock=clock)
        cb.record_failure()
        clock.advance(4.0)
        cb.record_failure()
        assert cb.opened_at == clock.now
        clock.advance(9.0)
        assert cb.should_allow() is False

    def test_remaining_cooldown(self, clock):
        cb = CircuitBreaker("test", threshold=1, cooldown=10.0, clock=clock)
        assert cb.remaining_cooldown() == 0.0
        cb.record_failure()
        clock.advance(3.0)
        assert cb.remaining_cooldown() == pytest.approx(7.0)

    def test_counts_transitions(self, clock):
        cb = CircuitBreaker("test", threshold=1, cooldown=1.0, clock=clock)
        cb.record_failure()
        clock.advance(1.0)
        cb.should_allow()
        assert cb.total_state_transitions == 2
        assert cb.total_failures == 1

    def test_snapshot(self, clock):
        cb = CircuitBreaker("ProviderA", threshold=3, cooldown=10.0, clock=clock)
        cb.record_failure()
        snap = cb.snapshot()
        assert snap["name"] == "ProviderA"
        assert snap["state"] == "CLOSED"
        assert snap["failure_count"] == 1
        assert snap["threshold"] == 3

    @pytest.mark.parametrize("threshold", [0, -1])
    def test_invalid_threshold(self, threshold):
        with pytest.raises(ValueError, match="threshold must be > 0"):
            CircuitBreaker("test", threshold=threshold)

    def test_invalid_cooldown(self):
        with pytest.raises(ValueError, match="cooldown must be >= 0"):
            CircuitBreaker("test", cooldown=-1.0)

    def test_repr(self):
        cb = CircuitBreaker("test", threshold=5, cooldown=60.0)
        r = repr(cb)
        assert "test" in r
        assert "CLOSED" in r
