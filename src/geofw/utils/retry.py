"""
geofw.utils.retry
~~~~~~~~~~~~~~~~~

Small retry helper for network-bound calls (the routing-table download).

:pyfunc:`call_with_retry` retries a callable whose attempt count and delay
are only known at runtime (they come from settings). It accepts an optional
:class:`threading.Event`; once it is set the wait between attempts is cut
short and :class:`RetryCancelled` is raised instead of trying again.

Example
-------
>>> from geofw.utils.retry import call_with_retry
>>> call_with_retry(download, attempts=3, delay=2.0, exceptions=(OSError,))
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryCancelled(Exception):
    """Raised when the cancellation event fires between attempts."""


def call_with_retry(
    func: Callable[[], T],
    *,
    attempts: int = 3,
    delay: float = 2.0,
    backoff: float = 1.0,
    jitter: float = 0.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
    cancel: Optional[threading.Event] = None,
    description: str = "call",
) -> T:
    """
    Call *func* until it succeeds or *attempts* calls have failed.

    Parameters
    ----------
    attempts:
        Total number of attempts (including the first one). Values below 1
        are treated as 1.
    delay:
        Seconds to wait before the second attempt.
    backoff:
        Multiplier applied to the delay after each failure; ``1.0`` keeps
        the delay fixed.
    jitter:
        Random ±jitter*delay offset.
    exceptions:
        Exception classes that count as a retryable failure. Anything else
        propagates immediately.
    cancel:
        Optional event; when set, no further attempt is started.

    Raises
    ------
    The last retryable exception once attempts are exhausted, or
    :class:`RetryCancelled`.
    """
    attempts = max(int(attempts), 1)
    _delay = delay
    for attempt in range(1, attempts + 1):
        if cancel is not None and cancel.is_set():
            raise RetryCancelled(f"{description} cancelled before attempt {attempt}")
        try:
            return func()
        except exceptions as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "%s failed (attempt %d/%d): %s", description, attempt, attempts, exc
            )
            sleep_for = max(_delay + random.uniform(-jitter, jitter) * _delay, 0)
            if cancel is not None:
                if cancel.wait(sleep_for):
                    raise RetryCancelled(f"{description} cancelled after attempt {attempt}") from exc
            else:
                time.sleep(sleep_for)
            _delay *= backoff
    raise AssertionError("unreachable")  # pragma: no cover

