"""Retry policy for forge transport calls."""

import time
import logging
from dataclasses import dataclass
from typing import Callable, Tuple, TypeVar

from github import GithubException, RateLimitExceededException
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt

logger = logging.getLogger(__name__)

T = TypeVar('T')

RATE_LIMIT_MESSAGES = ("rate limit", "was submitted too quickly")

# Seconds to wait before each attempt
DEFAULT_DELAYS: Tuple[float, ...] = (0, 60, 90, 120)

class GraphQLRequestError(Exception):
    """A GraphQL call answered with an ``errors`` array."""

def is_rate_limit_error(e: BaseException) -> bool:
    """Whether ``e`` means the forge asked us to slow down."""
    if isinstance(e, RateLimitExceededException):
        return True
    if isinstance(e, GithubException):
        if e.status not in (403, 429):
            return False
        return any(m in str(e.data).lower() for m in RATE_LIMIT_MESSAGES)
    if isinstance(e, GraphQLRequestError):
        return any(m in str(e).lower() for m in RATE_LIMIT_MESSAGES)
    return False

def _no_sleep(_: float) -> None:
    return None

@dataclass(frozen=True)
class RetryPolicy:
    """Escalating delay schedule applied to rate-limited calls.

    One attempt is made per entry in ``delays``. Entry ``n`` is the wait before
    retry ``n``; the first attempt never waits, so entry 0 is unused. The last
    error is raised once the attempts are used up. Errors ``is_retryable``
    rejects are raised immediately.
    """
    delays: Tuple[float, ...] = DEFAULT_DELAYS
    is_retryable: Callable[[BaseException], bool] = is_rate_limit_error
    sleep: Callable[[float], None] = time.sleep

    @classmethod
    def immediate(cls, attempts: int = len(DEFAULT_DELAYS)) -> 'RetryPolicy':
        """Same attempt count, no waiting. Meant for tests."""
        return cls(delays=(0,) * attempts, sleep=_no_sleep)

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.delays[min(retry_state.attempt_number, len(self.delays) - 1)]

    def call(self, fn: Callable[[], T], description: str = "request") -> T:
        if not self.delays:
            raise ValueError("RetryPolicy needs at least one delay entry")

        def log_retry(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"Rate limited, retrying {description} in {delay:g} seconds "
                f"(attempt {retry_state.attempt_number + 1} of {len(self.delays)})"
            )

        retrying = Retrying(
            stop=stop_after_attempt(len(self.delays)),
            wait=self._wait,
            retry=retry_if_exception(self.is_retryable),
            sleep=self.sleep,
            before_sleep=log_retry,
            reraise=True,
        )
        return retrying(fn)
