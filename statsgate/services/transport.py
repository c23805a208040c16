"""
HttpTransport - raw HTTP GET toward the statistics API on httpx.

Maps every failure onto the service error taxonomy so the retry executor
can classify it without knowing about httpx.
"""

import socket
import ssl
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from statsgate.services.errors import (
    ClientError,
    NotFoundError,
    RateLimitedError,
    RequestTimeoutError,
    ServiceError,
    TransientUpstreamError,
    UnauthorizedError,
    UnrecoverableNetworkError,
)


@dataclass
class TransportResponse:
    """Decoded response from a successful request."""

    status: int
    data: Any


def _error_detail(response: httpx.Response) -> str:
    """Pull the machine-readable detail out of a JSON:API error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return str(errors[0].get("detail") or errors[0].get("title") or "")
        if "detail" in body:
            return str(body["detail"])
    return response.text[:200]


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _is_unrecoverable(error: httpx.RequestError) -> bool:
    """DNS resolution and certificate failures will not go away on retry."""
    cause: BaseException | None = error
    seen: set[int] = set()
    while cause is not None and id(cause) not in seen:
        if isinstance(cause, (socket.gaierror, ssl.SSLCertVerificationError)):
            return True
        seen.add(id(cause))
        cause = cause.__cause__ or cause.__context__
    message = str(error).lower()
    return any(
        marker in message
        for marker in (
            "name or service not known",
            "nodename nor servname",
            "getaddrinfo failed",
            "certificate verify failed",
            "certificate has expired",
        )
    )


class HttpTransport:
    """
    Async HTTP transport with bearer authentication.

    Usage:
        transport = HttpTransport("pubg", "https://api.pubg.com", api_key="...")
        response = await transport.get("/shards/steam/seasons")
    """

    def __init__(
        self,
        service_id: str,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.service_id = service_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self._headers = {"Accept": "application/json"}
        if headers:
            self._headers.update(headers)
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"

        # HTTP client (lazy initialization unless injected)
        self._http_client = client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._http_client

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> TransportResponse:
        """
        GET a path relative to base_url.

        Raises:
            RequestTimeoutError: Request timed out
            RateLimitedError: HTTP 429, with retry_after from the header
            NotFoundError / UnauthorizedError / ClientError: other 4xx
            TransientUpstreamError: 5xx or a recoverable network failure
            UnrecoverableNetworkError: DNS or certificate failure
        """
        client = await self._get_http_client()
        req_timeout = timeout or self.timeout

        try:
            response = await client.get(
                path, params=params, headers=self._headers, timeout=req_timeout
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self.service_id, req_timeout) from e
        except httpx.HTTPStatusError as e:
            raise self._status_error(e.response) from e
        except httpx.RequestError as e:
            if _is_unrecoverable(e):
                raise UnrecoverableNetworkError(
                    f"{type(e).__name__}: {e}", service_id=self.service_id
                ) from e
            raise TransientUpstreamError(
                f"{type(e).__name__}: {e}", service_id=self.service_id
            ) from e

        logger.debug(f"{self.service_id} GET {path} -> {response.status_code}")
        if not response.content:
            return TransportResponse(status=response.status_code, data=None)
        try:
            data = response.json()
        except ValueError as e:
            raise TransientUpstreamError(
                f"Invalid JSON from {path}", service_id=self.service_id
            ) from e
        return TransportResponse(status=response.status_code, data=data)

    def _status_error(self, response: httpx.Response) -> ServiceError:
        status = response.status_code
        detail = _error_detail(response)
        message = f"HTTP {status}: {detail}"

        if status == 429:
            return RateLimitedError(
                self.service_id,
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
            )
        if status == 404:
            return NotFoundError(message, service_id=self.service_id, status=status)
        if status in (401, 403):
            return UnauthorizedError(message, service_id=self.service_id, status=status)
        if status == 408:
            return TransientUpstreamError(message, service_id=self.service_id, status=status)
        if 400 <= status < 500:
            return ClientError(message, service_id=self.service_id, status=status)
        return TransientUpstreamError(message, service_id=self.service_id, status=status)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
