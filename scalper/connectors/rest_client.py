"""Async Kraken REST client."""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from typing import Any
from urllib.parse import urlencode

import httpx
import orjson
import structlog

from scalper.config.settings import Settings
from scalper.connectors.errors import ExchangeError

PUBLIC_OPERATIONS = frozenset({"Time", "SystemStatus", "Assets", "AssetPairs", "Ticker", "OHLC"})


class KrakenRestClient:
    """Kraken spot/margin REST client.

    ``call`` performs exactly one HTTP request and either returns the ``result``
    payload or raises ``ExchangeError``. Retrying is the caller's concern.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.api_key = settings.kraken_api_key
        self.api_secret = settings.kraken_api_secret
        self.version = settings.kraken.api_version
        self.http = httpx.AsyncClient(
            base_url=settings.kraken.base_url,
            timeout=settings.kraken.timeout_sec,
            transport=transport,
        )
        self._last_nonce = 0
        self.log = structlog.get_logger(__name__)

    async def close(self) -> None:
        await self.http.aclose()

    async def call(self, operation: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        params = dict(params or {})
        if operation in PUBLIC_OPERATIONS:
            path = f"/{self.version}/public/{operation}"
            request = self.http.build_request("GET", path, params=params)
        else:
            path = f"/{self.version}/private/{operation}"
            params["nonce"] = self._next_nonce()
            body = urlencode(params)
            headers = {
                "API-Key": self.api_key,
                "API-Sign": self._sign(path, str(params["nonce"]), body),
                "Content-Type": "application/x-www-form-urlencoded; charset=utf-8",
            }
            request = self.http.build_request("POST", path, content=body, headers=headers)

        log_http = self.settings.monitoring.log_http
        max_body_chars = self.settings.monitoring.log_http_max_body_chars
        if log_http:
            self.log.info(
                "rest_request",
                operation=operation,
                method=request.method,
                params=self._sanitize_params(params),
            )
        start = time.perf_counter()
        try:
            response = await self.http.send(request)
            response.raise_for_status()
            payload = orjson.loads(response.content)
        except httpx.HTTPStatusError as exc:
            raise ExchangeError(
                f"HTTP {exc.response.status_code}: "
                f"{self._truncate(exc.response.text, max_body_chars)}",
                operation,
            ) from exc
        except httpx.RequestError as exc:
            raise ExchangeError(f"{type(exc).__name__}: {exc}", operation) from exc
        except orjson.JSONDecodeError as exc:
            raise ExchangeError(f"Invalid JSON response: {exc}", operation) from exc
        latency_ms = (time.perf_counter() - start) * 1000

        if not isinstance(payload, dict):
            raise ExchangeError("Malformed response: expected JSON object", operation)
        errors = payload.get("error") or []
        if log_http:
            self.log.info(
                "rest_response",
                operation=operation,
                status_code=response.status_code,
                latency_ms=round(latency_ms, 2),
                errors=errors,
            )
        if errors:
            raise ExchangeError(", ".join(str(err) for err in errors), operation)
        return payload.get("result") or {}

    def _next_nonce(self) -> int:
        nonce = int(time.time() * 1000)
        if nonce <= self._last_nonce:
            nonce = self._last_nonce + 1
        self._last_nonce = nonce
        return nonce

    def _sign(self, path: str, nonce: str, body: str) -> str:
        digest = hashlib.sha256((nonce + body).encode("utf-8")).digest()
        mac = hmac.new(
            base64.b64decode(self.api_secret),
            path.encode("utf-8") + digest,
            hashlib.sha512,
        )
        return base64.b64encode(mac.digest()).decode("ascii")

    @staticmethod
    def _sanitize_params(params: dict[str, Any]) -> dict[str, Any]:
        return {key: value for key, value in params.items() if key.lower() not in {"nonce", "otp"}}

    @staticmethod
    def _truncate(text: str, max_chars: int) -> str:
        if max_chars <= 0 or len(text) <= max_chars:
            return text
        return text[: max_chars - 3] + "..."
