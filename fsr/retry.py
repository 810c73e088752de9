from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from .errors import RemoteError
from .settings import settings

LOGGER = logging.getLogger("fsr.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries with exponential backoff.

    Only transient (transport) failures are retried; rejections by the target
    fail on the first attempt. ``max_retries=2`` means at most 3 attempts.
    """

    max_retries: int = 2
    base_delay_s: float = 0.5
    multiplier: float = 2.0
    max_delay_s: float = 10.0
    retry_reads: bool = True
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("delays must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    @classmethod
    def from_settings(cls, **overrides) -> "RetryPolicy":
        kw = dict(
            max_retries=settings.max_retries,
            base_delay_s=settings.backoff_base_s,
            multiplier=settings.backoff_multiplier,
            max_delay_s=settings.backoff_max_s,
            retry_reads=settings.retry_reads,
        )
        kw.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kw)

    def delay(self, retry_number: int) -> float:
        """Backoff before the n-th retry (1-based)."""
        return min(self.max_delay_s, self.base_delay_s * self.multiplier ** max(0, retry_number - 1))


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    retryable: bool = True,
    what: str = "call",
) -> tuple[T, int]:
    """Run ``fn`` until it succeeds or the policy gives up.

    Returns (result, attempts). On failure the last RemoteError is re-raised
    with its ``attempts`` attribute set.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn(), attempt
        except RemoteError as e:
            e.attempts = attempt
            if not (retryable and e.transient) or attempt > policy.max_retries:
                raise
            delay = policy.delay(attempt)
            LOGGER.warning("%s failed (attempt %s/%s): %s; retrying in %.2fs", what, attempt, policy.max_retries + 1, e, delay)
            policy.sleep(delay)
