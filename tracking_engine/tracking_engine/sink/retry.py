"""Bounded retry policy with exponential backoff for sink deliveries.

The policy only computes decisions; the batch processor owns the waiting, so
a record backing off never holds up the other records in its batch.
"""

from __future__ import annotations

import logging
import random

from pydantic import BaseModel, Field

from tracking_engine.sink.base import FailureKind

logger = logging.getLogger(__name__)


class RetryConfig(BaseModel):
    """Tuneable parameters for retry behaviour."""

    max_retries: int = Field(
        default=3,
        ge=0,
        description="Maximum number of re-attempts after the first delivery attempt.",
    )
    base_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Base delay in seconds for exponential backoff.",
    )
    max_delay: float = Field(
        default=60.0,
        gt=0.0,
        description="Upper bound on delay in seconds.",
    )
    jitter: bool = Field(
        default=False,
        description="When enabled, randomise the delay within [0.5x, 1.5x].",
    )


def compute_delay(attempt: int, config: RetryConfig) -> float:
    """Return the backoff before retry number *attempt* (1-based).

    With the defaults this yields 1s, 2s, 4s.
    """
    delay: float = min(config.base_delay * (2 ** (attempt - 1)), config.max_delay)
    if config.jitter:
        delay *= random.uniform(0.5, 1.5)  # noqa: S311
    return delay


class RetryPolicy:
    """Decides whether a failed delivery is re-attempted and after how long.

    Attempts are counted per record by the caller, so one record burning
    through its retries never shortens another record's budget.

    Parameters
    ----------
    config:
        Retry parameters (see :class:`RetryConfig`).
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        self._config = config or RetryConfig()

    @property
    def config(self) -> RetryConfig:
        return self._config

    def next_delay(self, kind: FailureKind, attempts: int) -> float | None:
        """Return the delay before the next attempt, or ``None`` to abandon.

        Parameters
        ----------
        kind:
            Classification of the failure that just happened.
        attempts:
            Delivery attempts made so far for this record, including the
            one that just failed.
        """
        if not kind.retryable:
            return None
        retry_number = attempts
        if retry_number > self._config.max_retries:
            return None
        delay = compute_delay(retry_number, self._config)
        logger.debug(
            "Retry %d/%d scheduled in %.1fs (%s)",
            retry_number,
            self._config.max_retries,
            delay,
            kind.value,
        )
        return delay
