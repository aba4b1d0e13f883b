#!/usr/bin/env python3
# CUI // SP-CTI
"""Creation Waiter - poll an asynchronous CreateAccount request to completion.

CreateAccount has no completion notification, so the waiter polls
DescribeCreateAccountStatus at a fixed interval with a bounded attempt budget
(default 60 x 10s = 10 minutes).

D6: A failed status query is logged and counted, consumes an attempt, and
polling continues. When the budget runs out and *no* poll ever returned a
status, the outcome is EXHAUSTED_WITH_ERRORS instead of TIMEOUT, so a broken
permission or bad request ID is distinguishable from a slow backend.

D7: sleep and clock are injected. An optional deadline (on the injected
clock) aborts the wait with DEADLINE_EXCEEDED; a sleep never overshoots it.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from arcorg.orgs.models import CreationState
from arcorg.resilience.errors import DirectoryError

logger = logging.getLogger("arcorg.orgs.waiter")

DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_INTERVAL_SECONDS = 10.0


class WaitStatus(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMEOUT = "timeout"
    EXHAUSTED_WITH_ERRORS = "exhausted_with_errors"
    DEADLINE_EXCEEDED = "deadline_exceeded"


@dataclass(frozen=True)
class WaitResult:
    status: WaitStatus
    attempts: int
    account_id: Optional[str] = None
    failure_reason: str = ""
    errors: int = 0
    last_error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status is WaitStatus.SUCCEEDED


class CreationWaiter:
    """Bounded, blocking poll of a creation ticket."""

    def __init__(
        self,
        directory,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self._directory = directory
        self.max_attempts = max_attempts
        self.interval = interval
        self._sleep = sleep
        self._clock = clock

    def wait(self, ticket_id: str, deadline: Optional[float] = None) -> WaitResult:
        """Poll ticket_id until SUCCEEDED, FAILED, budget exhaustion or deadline."""
        errors = 0
        last_error = ""

        for attempt in range(1, self.max_attempts + 1):
            delay = self.interval
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    logger.warning("Deadline reached waiting for %s after %d polls",
                                   ticket_id, attempt - 1)
                    return WaitResult(WaitStatus.DEADLINE_EXCEEDED, attempt - 1,
                                      errors=errors, last_error=last_error)
                delay = min(delay, remaining)
            self._sleep(delay)

            try:
                status = self._directory.get_creation_status(ticket_id)
            except DirectoryError as exc:
                errors += 1
                last_error = str(exc)
                logger.warning("Status poll %d/%d for %s failed: %s",
                               attempt, self.max_attempts, ticket_id, exc)
                continue

            if status.state is CreationState.SUCCEEDED and status.account_id:
                logger.info("Creation request %s succeeded: account %s",
                            ticket_id, status.account_id)
                return WaitResult(WaitStatus.SUCCEEDED, attempt,
                                  account_id=status.account_id, errors=errors,
                                  last_error=last_error)
            if status.state is CreationState.FAILED:
                logger.error("Creation request %s failed: %s", ticket_id,
                             status.failure_reason or "Unknown")
                return WaitResult(WaitStatus.FAILED, attempt,
                                  failure_reason=status.failure_reason,
                                  errors=errors, last_error=last_error)
            logger.debug("Creation request %s pending (%d/%d)", ticket_id,
                         attempt, self.max_attempts)

        if errors == self.max_attempts:
            return WaitResult(WaitStatus.EXHAUSTED_WITH_ERRORS, self.max_attempts,
                              errors=errors, last_error=last_error)
        logger.warning("Creation request %s still pending after %d polls",
                       ticket_id, self.max_attempts)
        return WaitResult(WaitStatus.TIMEOUT, self.max_attempts, errors=errors,
                          last_error=last_error)
