"""Exchange error types and classification."""

from __future__ import annotations

from collections.abc import Iterable


class ExchangeError(Exception):
    """An exchange operation failed.

    The message is the exchange's human-readable error text (for Kraken, the
    joined ``error`` list such as ``EOrder:Insufficient funds``) or a transport
    description. Classification inspects the message only.
    """

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        return self.message


def is_retryable(message: str, non_retryable: Iterable[str]) -> bool:
    lowered = message.lower()
    return not any(marker.lower() in lowered for marker in non_retryable)


def error_matches(exc: BaseException, marker: str) -> bool:
    return marker.lower() in str(exc).lower()
