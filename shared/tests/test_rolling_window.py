"""Tests for the rolling outcome window."""

import pytest

from shared.resilience.rolling_window import HealthCounts, RollingWindow


class TestRollingWindow:
    """Tests for bucketed expiry of outcomes."""

    def test_counts_attempts_and_failures(self, clock):
        """Test outcomes are aggregated."""
        window = RollingWindow(10_000, buckets=10, clock=clock)

        window.record(success=True)
        window.record(success=False)
        counts = window.record(success=False)

        assert counts == HealthCounts(attempts=3, failures=2)
        assert counts.error_percentage == pytest.approx(66.666, rel=1e-3)

    def test_empty_window_has_zero_error_percentage(self, clock):
        """Test no attempts means no errors."""
        window = RollingWindow(10_000, clock=clock)
        assert window.snapshot().error_percentage == 0.0

    def test_outcomes_expire_after_window(self, clock):
        """Test outcomes older than the window are dropped."""
        window = RollingWindow(10_000, buckets=10, clock=clock)
        window.record(success=False)

        clock.advance(5)
        window.record(success=False)
        assert window.snapshot().attempts == 2

        clock.advance(6)
        # The first bucket is now entirely outside the window
        assert window.snapshot() == HealthCounts(attempts=1, failures=1)

        clock.advance(10)
        assert window.snapshot() == HealthCounts()

    def test_reset_clears_counts(self, clock):
        """Test reset empties the window."""
        window = RollingWindow(10_000, clock=clock)
        window.record(success=False)
        window.reset()
        assert window.snapshot().attempts == 0

    def test_rejects_invalid_sizes(self):
        """Test window and bucket sizes must be positive."""
        with pytest.raises(ValueError):
            RollingWindow(0)
        with pytest.raises(ValueError):
            RollingWindow(1000, buckets=0)
