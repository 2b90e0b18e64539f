"""Tests for the clock abstraction."""

import pytest

from src.core.clock import MockClock, SystemClock


class TestMockClock:
    def test_starts_at_given_time(self):
        assert MockClock(start=5.0).monotonic() == 5.0

    def test_advance(self):
        clock = MockClock()
        clock.advance(2.5)
        assert clock.monotonic() == 2.5

    def test_negative_advance_rejected(self):
        with pytest.raises(ValueError):
            MockClock().advance(-1.0)

    async def test_sleep_advances_and_records(self):
        clock = MockClock()
        await clock.sleep(3.0)
        await clock.sleep(9.0)
        assert clock.monotonic() == 12.0
        assert clock.sleeps == [3.0, 9.0]


class TestSystemClock:
    async def test_monotonic_moves_forward(self):
        clock = SystemClock()
        before = clock.monotonic()
        await clock.sleep(0.01)
        assert clock.monotonic() > before
