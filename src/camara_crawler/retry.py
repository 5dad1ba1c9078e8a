import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .config import RetryCfg
from .errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def linear_backoff(base_delay: float, attempt: int) -> float:
    # attempt 1 -> base, attempt 2 -> 2*base, ...
    return base_delay * attempt


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0
    backoff: Callable[[float, int], float] = linear_backoff
    retryable: Callable[[BaseException], bool] = is_retryable

    @staticmethod
    def from_cfg(cfg: RetryCfg) -> "RetryPolicy":
        return RetryPolicy(max_attempts=cfg.max_attempts, base_delay=cfg.backoff_sec)

    def delay(self, attempt: int) -> float:
        return max(0.0, self.backoff(self.base_delay, attempt))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    sleep: Sleep = asyncio.sleep,
    label: str = "",
) -> T:
    policy = policy or RetryPolicy()
    attempts = max(1, policy.max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not policy.retryable(e) or attempt == attempts:
                raise
            wait_s = policy.delay(attempt)
            logger.warning(f"RETRY: attempt={attempt}/{attempts} wait={wait_s:.1f}s target={label} err={e}")
            await sleep(wait_s)

    raise AssertionError("unreachable")
