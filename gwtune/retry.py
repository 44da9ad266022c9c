from __future__ import annotations

import time
from typing import Callable, Optional, TypeVar

from .events import log_event

T = TypeVar("T")


def retry(
    fn: Callable[[], Optional[T]],
    attempts: int,
    delay_s: float,
    *,
    backoff: float = 1.0,
    max_delay_s: float | None = None,
    retry_on: tuple[type[BaseException], ...] = (),
    describe: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[T]:
    """Call `fn` until it returns something truthy, at most `attempts` times.

    Returns the first truthy result, or None once the attempts are used up.
    Exceptions listed in `retry_on` count as a failed attempt; anything else
    propagates. `backoff` multiplies the delay after every failed attempt
    (1.0 keeps it fixed).
    """
    attempts = max(1, int(attempts))
    delay = max(0.0, float(delay_s))
    for attempt in range(1, attempts + 1):
        try:
            result = fn()
        except retry_on as e:
            log_event("DEBUG", f"{describe} raised", attempt=attempt, error=f"{type(e).__name__}: {e}")
            result = None
        if result:
            return result
        if attempt < attempts:
            sleep(delay)
            delay *= backoff
            if max_delay_s is not None:
                delay = min(delay, max_delay_s)
    log_event("WARN", f"{describe} gave up", attempts=attempts)
    return None
