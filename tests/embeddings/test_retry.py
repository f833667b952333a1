from __future__ import annotations

import pytest

from docsync.embeddings.retry import RetryState, backoff_delay


def test_backoff_doubles_from_base_delay() -> None:
    assert [backoff_delay(attempt, 0.5) for attempt in range(4)] == [
        0.5,
        1.0,
        2.0,
        4.0,
    ]


def test_backoff_rejects_negative_attempt() -> None:
    with pytest.raises(ValueError):
        backoff_delay(-1, 1.0)


def test_retry_state_yields_delays_until_budget_is_spent() -> None:
    state = RetryState(max_attempts=3, base_delay=1.0)

    assert state.record_failure() == 1.0
    assert state.record_failure() == 2.0
    assert state.record_failure() is None
    assert state.exhausted
    assert state.attempt == 3


def test_single_attempt_never_retries() -> None:
    state = RetryState(max_attempts=1, base_delay=1.0)

    assert state.record_failure() is None


def test_retry_state_requires_an_attempt() -> None:
    with pytest.raises(ValueError):
        RetryState(max_attempts=0, base_delay=1.0)
