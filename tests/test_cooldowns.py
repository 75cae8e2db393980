from susbot.cooldowns import CooldownTracker
from tests.telegram_fakes import FakeClock


def test_unused_command_is_not_on_cooldown() -> None:
    tracker = CooldownTracker(clock=FakeClock())

    assert tracker.is_on_cooldown(1, "rank", 5) == (False, 0)


def test_remaining_seconds_round_up() -> None:
    clock = FakeClock()
    tracker = CooldownTracker(clock=clock)
    tracker.mark(1, "rank")

    clock.advance(1.2)

    assert tracker.is_on_cooldown(1, "rank", 5) == (True, 4)


def test_window_expires() -> None:
    clock = FakeClock()
    tracker = CooldownTracker(clock=clock)
    tracker.mark(1, "rank")

    clock.advance(5)

    assert tracker.is_on_cooldown(1, "rank", 5) == (False, 0)


def test_zero_duration_never_blocks() -> None:
    tracker = CooldownTracker(clock=FakeClock())
    tracker.mark(1, "help")

    assert tracker.is_on_cooldown(1, "help", 0) == (False, 0)


def test_keys_are_per_user_and_command() -> None:
    tracker = CooldownTracker(clock=FakeClock())
    tracker.mark(1, "rank")

    assert tracker.is_on_cooldown(2, "rank", 5)[0] is False
    assert tracker.is_on_cooldown(1, "top", 5)[0] is False
    assert tracker.is_on_cooldown("1", "rank", 5)[0] is True
    assert len(tracker) == 1

    tracker.clear()

    assert len(tracker) == 0
    assert tracker.is_on_cooldown(1, "rank", 5) == (False, 0)
