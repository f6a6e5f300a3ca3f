from datetime import datetime, timedelta, timezone

import pytest

from tutorbook_client import NotificationCooldown


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2030, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def test_fires_once_per_window():
    clock = FakeClock()
    cooldown = NotificationCooldown(3, clock=clock)

    assert cooldown.try_fire() is True
    assert cooldown.try_fire() is False

    clock.advance(2.9)
    assert cooldown.ready() is False

    clock.advance(0.1)
    assert cooldown.try_fire() is True
    assert cooldown.last_fired() == clock.now


def test_keys_are_independent():
    clock = FakeClock()
    cooldown = NotificationCooldown(3, clock=clock)

    assert cooldown.try_fire("payment") is True
    assert cooldown.try_fire("booking") is True
    assert cooldown.try_fire("payment") is False


def test_reset():
    clock = FakeClock()
    cooldown = NotificationCooldown(3, clock=clock)
    cooldown.try_fire("payment")
    cooldown.try_fire("booking")

    cooldown.reset("payment")
    assert cooldown.ready("payment") is True
    assert cooldown.ready("booking") is False

    cooldown.reset()
    assert cooldown.last_fired("booking") is None


def test_negative_cooldown_rejected():
    with pytest.raises(ValueError):
        NotificationCooldown(-1)
