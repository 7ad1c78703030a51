from datetime import datetime, timedelta, timezone

import pytest

from vanplanner.services.tracking.feed import LivePositionFeed


def test_history_is_bounded_and_oldest_first() -> None:
    feed = LivePositionFeed(history_size=3)
    base = datetime(2024, 3, 4, 7, 0, tzinfo=timezone.utc)

    for minute in range(5):
        feed.publish("V1", -23.55 + minute * 0.001, -46.63, recorded_at=base + timedelta(minutes=minute))

    history = feed.history("V1")
    assert [fix.recorded_at.minute for fix in history] == [2, 3, 4]
    assert feed.latest("V1") == history[-1]


def test_unknown_van_has_no_position() -> None:
    feed = LivePositionFeed()

    assert feed.latest("V1") is None
    assert feed.history("V1") == []


def test_rejects_out_of_range_coordinates() -> None:
    with pytest.raises(ValueError):
        LivePositionFeed().publish("V1", 95.0, 0.0)


def test_forget_and_clear() -> None:
    feed = LivePositionFeed()
    feed.publish("V1", 0.0, 0.0)
    feed.publish("V2", 0.0, 0.0)

    feed.forget("V1")
    assert feed.latest("V1") is None
    assert feed.latest("V2") is not None

    feed.clear()
    assert feed.history("V2") == []
