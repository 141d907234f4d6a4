import pytest

from trackerbot import rate_limits, storage


@pytest.fixture
def clock(monkeypatch):
    now = {"t": 1_000.0}
    monkeypatch.setattr(rate_limits, "_now", lambda: now["t"])
    return now


def test_limit_calls_allowed_then_denied(clock):
    remaining = []
    for _ in range(5):
        result = rate_limits.check(1, "commands", 5, 60)
        assert result.allowed
        remaining.append(result.remaining)
    assert remaining == [4, 3, 2, 1, 0]

    denied = rate_limits.check(1, "commands", 5, 60)
    assert not denied.allowed
    assert denied.remaining == 0
    assert denied.reset_at == 1_060.0


def test_denied_call_does_not_increment(clock):
    for _ in range(3):
        rate_limits.check(1, "x", 2, 60)
    assert storage.load("rate_limits")["1:x"]["count"] == 2


def test_window_restarts_after_reset_at(clock):
    for _ in range(3):
        rate_limits.check(1, "buttons", 2, 10)
    clock["t"] += 10.5
    result = rate_limits.check(1, "buttons", 2, 10)
    assert result.allowed
    assert result.remaining == 1
    assert result.reset_at == clock["t"] + 10


def test_window_boundary_is_exclusive(clock):
    rate_limits.check(1, "a", 1, 10)
    clock["t"] += 10
    # now == reset_at: still the same window
    assert not rate_limits.check(1, "a", 1, 10).allowed


def test_windows_are_per_user_and_action(clock):
    rate_limits.check(1, "a", 1, 60)
    assert rate_limits.check(2, "a", 1, 60).allowed
    assert rate_limits.check(1, "b", 1, 60).allowed
    assert not rate_limits.check(1, "a", 1, 60).allowed


def test_reset(clock):
    assert rate_limits.reset(1, "a") is False
    rate_limits.check(1, "a", 1, 60)
    assert rate_limits.reset(1, "a") is True
    assert rate_limits.reset(1, "a") is False
    assert rate_limits.check(1, "a", 1, 60).allowed


def test_check_action_uses_policy_table(clock):
    limit, _window = rate_limits.RATE_LIMITS["commands"]
    result = rate_limits.check_action(7, "commands")
    assert result.remaining == limit - 1


def test_unknown_category_uses_spam_policy(clock):
    limit, _window = rate_limits.RATE_LIMITS["spam"]
    assert rate_limits.policy_for("whatever") == rate_limits.RATE_LIMITS["spam"]
    for _ in range(limit):
        assert rate_limits.check_action(7, "whatever").allowed
    assert not rate_limits.check_action(7, "whatever").allowed
