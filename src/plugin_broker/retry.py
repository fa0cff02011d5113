"""Rate-limit aware retries for marketplace traffic.

The VS Code marketplace answers HTTP 429 when an IP address exceeds its
quota. The quota window is a minute, so retries wait a fixed delay rather
than backing off exponentially.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

from plugin_broker.errors import RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOO_MANY_REQUESTS = 429


def is_rate_limit_error(error: BaseException) -> bool:
    return (
        isinstance(error, httpx.HTTPStatusError)
        and error.response.status_code == TOO_MANY_REQUESTS
    )


@dataclass
class RateLimitPolicy:
    """Retry an operation after HTTP 429 replies.

    ``retries`` counts retries after the first attempt, so the operation runs
    at most ``retries + 1`` times and waits at most ``retries * delay``
    seconds in total.
    """

    retries: int = 5
    delay: float = 60.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        plugin_id: str,
        on_retry: Callable[[int, int], Awaitable[None]] | None = None,
    ) -> T:
        """Run ``operation``, retrying on rate limiting.

        Args:
            operation: Zero-argument coroutine factory
            plugin_id: Plugin the traffic is for, used in the final error
            on_retry: Called with (retry number, total retries) before each wait

        Raises:
            RateLimitedError: If the last retry is still rate limited
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except httpx.HTTPStatusError as e:
                if not is_rate_limit_error(e):
                    raise
                if attempt >= self.retries:
                    raise RateLimitedError(plugin_id, self.retries) from e
                attempt += 1
                if on_retry is not None:
                    await on_retry(attempt, self.retries)
                else:
                    logger.warning(
                        "Rate limit reached for plugin '%s'. Retry #%d from %d in %.0f seconds",
                        plugin_id,
                        attempt,
                        self.retries,
                        self.delay,
                    )
                await self.sleep(self.delay)
