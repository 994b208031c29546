"""
Deadline handling for AWS Cloud Scanner

One deadline covers a whole scan invocation. Blocking calls (identity lookup,
the live scan) run in a daemon thread that is abandoned once it passes, so a
hung call never keeps the process alive. AWS clients built for the run get
timeouts bounded by the deadline, and no new API call starts after it expired.
"""

import queue
import threading
import time
from typing import Any, Callable, Optional, Tuple, TypeVar

import boto3
from botocore.config import Config

from .errors import DeadlineExceededError

T = TypeVar("T")

# Upper bounds for a single AWS request, as used by the scanners without a deadline
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 60.0
MAX_ATTEMPTS = 3

_HOOK_ID = "aws-cloud-scanner-deadline"


class Deadline:
    """Absolute point in (monotonic) time after which the scan gives up."""

    def __init__(self, timeout: Optional[float]):
        self.timeout = timeout
        self._expires_at = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, operation: str) -> None:
        """Raise DeadlineExceededError if the deadline already passed."""
        if self.expired():
            raise DeadlineExceededError(
                f"deadline of {self.timeout}s exceeded before {operation}", operation=operation
            )

    def client_config(self) -> Config:
        """
        botocore client config whose retried requests fit in the remaining time.

        Each attempt gets an equal share of what is left, capped at the
        default connect/read timeouts.
        """
        connect_timeout, read_timeout = DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT
        remaining = self.remaining()
        if remaining is not None:
            share = max(1.0, remaining / MAX_ATTEMPTS)
            connect_timeout = min(connect_timeout, share)
            read_timeout = min(read_timeout, share)
        return Config(
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": MAX_ATTEMPTS, "mode": "adaptive"},
        )

    def bind(self, session: boto3.Session) -> None:
        """Make every API call made through ``session`` fail once the deadline passed."""

        def _check_before_call(**kwargs: Any) -> None:
            self.check(f"aws call {kwargs.get('event_name', '')}".strip())

        # Pooled sessions outlive a run: replace the previous run's hook
        session.events.unregister("before-call", unique_id=_HOOK_ID)
        session.events.register("before-call", _check_before_call, unique_id=_HOOK_ID)


def call_with_deadline(deadline: Deadline, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run ``func`` and wait at most until the deadline.

    Errors raised by ``func`` after the deadline passed are reported as
    DeadlineExceededError, chained to the original error.
    """
    deadline.check(operation)

    outcome: "queue.Queue[Tuple[bool, Any]]" = queue.Queue(maxsize=1)

    def _worker() -> None:
        try:
            outcome.put((True, func(*args, **kwargs)))
        except BaseException as e:  # handed to the waiting caller
            outcome.put((False, e))

    threading.Thread(target=_worker, name=f"deadline-{operation}", daemon=True).start()

    try:
        succeeded, value = outcome.get(timeout=deadline.remaining())
    except queue.Empty as e:
        raise DeadlineExceededError(
            f"deadline of {deadline.timeout}s exceeded during {operation}", operation=operation
        ) from e

    if succeeded:
        return value
    if deadline.expired() and not isinstance(value, DeadlineExceededError):
        raise DeadlineExceededError(
            f"deadline of {deadline.timeout}s exceeded during {operation}: {value}", operation=operation
        ) from value
    raise value
