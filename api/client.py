"""
Typed asynchronous client for the TaoStats analytics REST API.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import backoff
import httpx

from config import USER_AGENT, ClientConfig
from .schemas import ApiResponse

log = logging.getLogger("taostats_api_client")

_API_KEY_REQUIRED = (
    "API key is required for TaoStats API calls. Please provide api_key in the "
    "TaoStatsClient config. Note: API key is not required with a custom rpc_url "
    "for blockchain operations (transfer, stake, unstake and move modules)."
)


class TaoStatsAPIError(Exception):
    """Raised for every failed REST call (HTTP error, network error, missing key)."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response


def _is_client_error(err: Exception) -> bool:
    # only 5xx and transport failures are worth retrying
    return isinstance(err, httpx.HTTPStatusError) and err.response.status_code < 500


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if message:
            return str(message)
    return f"HTTP {response.status_code} for {response.request.url.path}"


class TaoStatsAPIClient:
    """
    Minimal wrapper around httpx.AsyncClient with automatic retries.

    Retries use exponential backoff on 5xx responses and transport errors;
    4xx responses fail immediately.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff_factor: float = 2,
    ) -> None:
        self.config = config
        headers = {"accept": "application/json", "User-Agent": USER_AGENT}
        if config.api_key:
            headers["Authorization"] = config.api_key

        self._client = httpx.AsyncClient(
            base_url=str(config.base_url).rstrip("/"),
            timeout=config.timeout,
            headers=headers,
            transport=transport,
        )
        self._send_with_retry = backoff.on_exception(
            backoff.expo,
            (httpx.HTTPStatusError, httpx.TransportError),
            max_tries=max(1, config.retries + 1),
            giveup=_is_client_error,
            jitter=None,
            factor=backoff_factor,
            logger=log,
        )(self._send)

    # ────────────────────────────────────────────────────────
    # Transport
    # ────────────────────────────────────────────────────────
    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self._client.request(method, path, **kwargs)
        response.raise_for_status()
        return response

    async def request(self, method: str, path: str, **kwargs: Any) -> ApiResponse:
        if not self.config.api_key and "/status/" not in path:
            raise TaoStatsAPIError(_API_KEY_REQUIRED)

        try:
            response = await self._send_with_retry(method, path, **kwargs)
        except httpx.HTTPStatusError as err:
            raise TaoStatsAPIError(
                _error_message(err.response), err.response.status_code, _safe_json(err.response)
            ) from err
        except httpx.TransportError as err:
            raise TaoStatsAPIError(f"Network error: No response received ({err})") from err

        log.debug("%s %s -> %d", method, path, response.status_code)
        return ApiResponse(
            success=200 <= response.status_code < 300,
            status_code=response.status_code,
            data=_safe_json(response),
        )

    # ────────────────────────────────────────────────────────
    # Public verbs
    # ────────────────────────────────────────────────────────
    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        clean = {k: v for k, v in (params or {}).items() if v is not None}
        return await self.request("GET", path, params=clean)

    async def post(self, path: str, data: Any = None) -> ApiResponse:
        return await self.request("POST", path, json=data)

    # ────────────────────────────────────────────────────────
    # Context manager helpers
    # ────────────────────────────────────────────────────────
    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "TaoStatsAPIClient":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None
