"""带指数退避的重试执行器。

- 每次失败都先交给分类器，得到 AuthError；
- 不可重试、或已用满 max_retries + 1 次尝试时，抛出分类后的错误；
- 否则等待 base_delay_ms * backoff_multiplier^(attempt-1) 毫秒后重试。

尝试严格串行；等待不可由调用方取消。日志与 sleep 均可注入，便于测试观测。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from .domain import DEFAULT_RETRY_POLICY, AuthError, ErrorKind, RetryPolicy
from .error_handling import classify_error

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryExecutor:
    def __init__(
        self,
        classify: Callable[[BaseException], AuthError] = classify_error,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._classify = classify
        self._sleep = sleep
        self._logger = log or logger

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        *,
        name: str = "request",
    ) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:  # noqa: BLE001
                error = self._classify(exc)
                if not error.retryable or attempt >= policy.max_retries + 1:
                    if attempt > 1 or error.retryable or error.kind == ErrorKind.UNKNOWN:
                        self._logger.warning(
                            "%s failed after %d attempt(s): %s (%s)",
                            name,
                            attempt,
                            error.kind.value,
                            exc.__class__.__name__,
                        )
                    if error is exc:
                        raise
                    raise error from exc

                delay_ms = policy.delay_ms(attempt)
                self._logger.warning(
                    "%s failed (attempt %d, %s, status=%s), retrying in %.0fms",
                    name,
                    attempt,
                    error.kind.value,
                    error.status,
                    delay_ms,
                )
                await self._sleep(delay_ms / 1000.0)


__all__ = ["RetryExecutor"]
