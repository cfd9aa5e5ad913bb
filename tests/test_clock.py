"""
Tests for the injectable clock.
"""

from datetime import datetime, timedelta, timezone

from core.clock import ClockFactory, MockClock, SystemClock, to_naive_utc


def test_naive_now_strips_timezone():
    clock = MockClock(datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc))

    assert clock.naive_now() == datetime(2025, 1, 1, 12, 0)
    assert clock.naive_now().tzinfo is None


def test_advance_and_set_time():
    clock = MockClock(datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc))
    start = clock.timestamp()

    clock.advance(seconds=90)
    assert clock.timestamp() - start == 90

    clock.set_time(datetime(2025, 6, 1, tzinfo=timezone.utc))
    assert clock.naive_now() == datetime(2025, 6, 1)


def test_to_naive_utc_converts_offsets():
    aware = datetime(2025, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert to_naive_utc(aware) == datetime(2025, 1, 1, 12, 0)


def test_use_mock_restores_previous_clock():
    ClockFactory.reset()

    with ClockFactory.use_mock(datetime(2025, 1, 1, tzinfo=timezone.utc)) as mock:
        assert ClockFactory.get_clock() is mock

    assert isinstance(ClockFactory.get_clock(), SystemClock)
