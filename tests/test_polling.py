import pytest

from form_filler.polling import RetryPolicy, poll_until


def test_returns_first_terminal_result():
    results = iter(["pending", "running", "done", "never"])
    sleeps = []

    outcome = poll_until(lambda: next(results), lambda r: r == "done", RetryPolicy(5, 2.0), sleep=sleeps.append)

    assert outcome == "done"
    assert sleeps == [2.0, 2.0]


def test_stops_after_max_attempts_without_trailing_sleep():
    calls = []
    sleeps = []

    def fetch():
        calls.append(1)
        return "pending"

    outcome = poll_until(fetch, lambda r: False, RetryPolicy(4, 0.5), sleep=sleeps.append)

    assert outcome is None
    assert len(calls) == 4
    assert len(sleeps) == 3
    assert sum(sleeps) <= RetryPolicy(4, 0.5).max_wait_seconds


def test_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(0, 1.0)
    with pytest.raises(ValueError):
        RetryPolicy(1, -1.0)
