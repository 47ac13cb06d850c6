"""
RetryService -- single bounded retry for lock contention.

Responsibility:
    Re-runs a whole transactional operation once when it lost a row-lock
    race (lock timeout, deadlock victim, serialization failure).  Every
    other error surfaces to the caller unchanged.

Architecture position:
    Kernel > Services -- policy helper.  Used by the stock facade around
    each ``session_scope`` so a retry always starts a fresh transaction.

Invariants enforced:
    - At most one retry: max_retries is validated to be 0 or 1.
    - Only LockTimeoutError is retryable.

Failure modes:
    - LockTimeoutError after the last attempt, with ``attempts`` set.

Usage:
    retry = RetryService(RetryPolicy(max_retries=1, backoff_seconds=0.05))
    batch_id = retry.run("receive", lambda: _receive_in_new_transaction())
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from inventory_kernel.exceptions import LockTimeoutError, ValidationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.retry_service")

T = TypeVar("T")

MAX_LOCK_RETRIES = 1


@dataclass(frozen=True)
class RetryPolicy:
    """How many times, and after how long, to retry a contended operation."""

    max_retries: int = 1
    backoff_seconds: float = 0.05

    def __post_init__(self) -> None:
        if not 0 <= self.max_retries <= MAX_LOCK_RETRIES:
            raise ValidationError(
                f"max_retries must be between 0 and {MAX_LOCK_RETRIES}",
                field="max_retries",
                value=self.max_retries,
            )
        if self.backoff_seconds < 0:
            raise ValidationError(
                "backoff_seconds must not be negative",
                field="backoff_seconds",
                value=self.backoff_seconds,
            )


class RetryService:
    """
    Runs a callable, retrying once on LockTimeoutError.

    Contract:
        ``fn`` must open and close its own transaction; RetryService never
        touches a session.

    Guarantees:
        - ``fn`` is called at most ``max_retries + 1`` times.
        - Backoff grows linearly with the attempt number.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def run(self, operation: str, fn: Callable[[], T]) -> T:
        attempts = self._policy.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except LockTimeoutError as exc:
                if attempt >= attempts:
                    logger.warning(
                        "lock_retry_exhausted",
                        extra={"operation": operation, "attempts": attempt},
                    )
                    raise LockTimeoutError(operation, attempts=attempt, detail=exc.detail) from exc
                logger.info(
                    "lock_retry_scheduled",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "backoff_seconds": self._policy.backoff_seconds * attempt,
                    },
                )
                self._sleep(self._policy.backoff_seconds * attempt)
        raise AssertionError("unreachable")
