"""Retry bookkeeping for embedding requests."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["RetryState", "backoff_delay"]


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Return the wait before retrying after failed attempt ``attempt``.

    ``attempt`` is zero-based, so the first retry waits ``base_delay``.

    Example:
        >>> [backoff_delay(n, 1.0) for n in range(4)]
        [1.0, 2.0, 4.0, 8.0]
    """

    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    return base_delay * (2**attempt)


@dataclass(slots=True)
class RetryState:
    """Mutable attempt counter driving one request's retry loop."""

    max_attempts: int
    base_delay: float
    attempt: int = 0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    def record_failure(self) -> float | None:
        """Count a failed attempt.

        Returns:
            The delay to wait before the next attempt, or ``None`` when the
            attempt budget is spent.
        """

        delay = backoff_delay(self.attempt, self.base_delay)
        self.attempt += 1
        if self.exhausted:
            return None
        return delay
