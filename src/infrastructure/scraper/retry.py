"""
Bounded retry combinator shared by sort navigation, reveal actions and
resource observation.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Tuple, TypeVar

from ...domain.errors import PageUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff: base * multiplier^(n-1), capped at max_seconds."""
    base_seconds: float = 1.0
    multiplier: float = 2.0
    max_seconds: float = 5.0

    def delay_for(self, attempt_number: int) -> float:
        if attempt_number < 1:
            return 0.0
        return min(self.base_seconds * self.multiplier ** (attempt_number - 1), self.max_seconds)


NO_BACKOFF = BackoffPolicy(base_seconds=0.0, multiplier=1.0, max_seconds=0.0)


@dataclass(frozen=True)
class AttemptResult(Generic[T]):
    succeeded: bool
    value: Optional[T]
    attempts: int
    errors: Tuple[str, ...] = ()

    @property
    def last_error(self) -> Optional[str]:
        return self.errors[-1] if self.errors else None


def attempt(
    fn: Callable[[], T],
    max_attempts: int,
    backoff: Optional[BackoffPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
    accept: Optional[Callable[[T], bool]] = None,
    label: str = "operation",
) -> AttemptResult:
    """
    Call ``fn`` up to ``max_attempts`` times.

    A call counts as a success when it returns without raising and, if
    ``accept`` is given, ``accept(value)`` is true. Between tries ``sleep`` is
    called with the backoff delay. PageUnavailableError is never retried.
    """
    policy = backoff or NO_BACKOFF
    errors = []
    value = None

    for number in range(1, max(1, max_attempts) + 1):
        try:
            value = fn()
            if accept is None or accept(value):
                return AttemptResult(True, value, number, tuple(errors))
            errors.append(f"attempt {number}: result rejected")
        except PageUnavailableError:
            raise
        except Exception as e:
            errors.append(f"attempt {number}: {e}")
            logger.debug(f"{label} attempt {number}/{max_attempts} failed: {e}")

        if number < max_attempts:
            delay = policy.delay_for(number)
            if delay > 0:
                sleep(delay)

    logger.warning(f"{label} failed after {max(1, max_attempts)} attempts")
    return AttemptResult(False, value, max(1, max_attempts), tuple(errors))
