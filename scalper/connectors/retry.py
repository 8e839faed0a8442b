"""Bounded retry around exchange gateway calls."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from scalper.config.settings import RetryConfig
from scalper.connectors.errors import ExchangeError, is_retryable

if TYPE_CHECKING:
    from scalper.monitoring.metrics import Metrics


class ExchangeGateway(Protocol):
    async def call(self, operation: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        ...


class RetryingCaller:
    """Call the gateway up to ``max_attempts`` times with a fixed delay between attempts.

    Errors whose message contains one of the configured non-retryable markers
    (invalid key, invalid nonce, invalid arguments, permission denied) fail on
    the first attempt. Any other ``ExchangeError`` is retried until attempts are
    exhausted, after which the last error is raised.
    """

    def __init__(
        self,
        gateway: ExchangeGateway,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.config = config or RetryConfig()
        self._sleep = sleep
        self.metrics: Metrics | None = None
        self.log = structlog.get_logger(__name__)

    def set_metrics(self, metrics: Metrics) -> None:
        self.metrics = metrics

    async def call(self, operation: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        max_attempts = self.config.max_attempts
        attempt = 0
        while True:
            attempt += 1
            self.log.debug("exchange_call_attempt", operation=operation, attempt=attempt)
            try:
                return await self.gateway.call(operation, params)
            except ExchangeError as exc:
                retryable = is_retryable(str(exc), self.config.non_retryable_errors)
                self.log.warning(
                    "exchange_call_failed",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    retryable=retryable,
                    error=str(exc),
                )
                if not retryable:
                    raise
                if attempt >= max_attempts:
                    self.log.error(
                        "exchange_call_exhausted",
                        operation=operation,
                        attempts=max_attempts,
                        error=str(exc),
                    )
                    raise
            if self.metrics:
                self.metrics.exchange_retries_total.labels(operation=operation).inc()
            await self._sleep(self.config.delay_sec)
