"""
Fixed-interval polling shared by the fill client and the remote OCR reader.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to poll and how long to wait between polls."""

    max_attempts: int
    interval_seconds: float

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")

    @property
    def max_wait_seconds(self) -> float:
        return self.max_attempts * self.interval_seconds


FILL_RETRY_POLICY = RetryPolicy(max_attempts=90, interval_seconds=3.0)
OCR_RETRY_POLICY = RetryPolicy(max_attempts=60, interval_seconds=3.0)


def poll_until(
    fetch: Callable[[], T],
    is_terminal: Callable[[T], bool],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "job",
) -> Optional[T]:
    """
    Call `fetch` until `is_terminal` accepts its result.

    At most `policy.max_attempts` calls are made, with a fixed sleep between
    consecutive calls and none after the last one. Returns the terminal
    result, or None when the attempts ran out.
    """
    for attempt in range(1, policy.max_attempts + 1):
        result = fetch()
        if is_terminal(result):
            return result
        logger.info("Poll attempt %d/%d for %s: not finished", attempt, policy.max_attempts, label)
        if attempt < policy.max_attempts:
            sleep(policy.interval_seconds)
    return None
