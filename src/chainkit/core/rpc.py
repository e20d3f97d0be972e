"""
HTTP transport shared by every provider.

Wraps an httpx.AsyncClient for both JSON-RPC 2.0 endpoints and REST
indexers. Failures are tagged with the chain alias and surfaced as RpcError;
nothing is retried here.
"""

import itertools
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union

import httpx
import structlog

from chainkit.core.errors import RateLimitError, RpcError, RpcTimeoutError

logger = structlog.get_logger(__name__)


class RpcClient:
    """
    Async HTTP client bound to one chain endpoint.

    The underlying httpx client is created on first use and reused until
    ``close`` is called.
    """

    def __init__(
        self,
        chain_alias: str,
        base_url: str,
        timeout: float = 30.0,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            chain_alias: Alias used to tag errors and log events
            base_url: Endpoint URL
            timeout: Request timeout in seconds
            headers: Extra headers sent with every request
            transport: Optional httpx transport (used by tests)
        """
        self.chain_alias = chain_alias
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        logger.debug("rpc_client_connected", chain=self.chain_alias, base_url=self.base_url)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("rpc_client_closed", chain=self.chain_alias)

    async def request(
        self,
        method: str,
        path: str = "",
        **kwargs,
    ) -> Any:
        """
        Make an HTTP request and decode the JSON body.

        Returns:
            Decoded JSON, or None when the endpoint answers 404

        Raises:
            RpcTimeoutError: If the request times out
            RateLimitError: If the endpoint answers 429
            RpcError: On any other transport failure or non-2xx status
        """
        if not self._client:
            await self.connect()

        try:
            response = await self._client.request(method, path or self.base_url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("rpc_request_timeout", chain=self.chain_alias, path=path)
            raise RpcTimeoutError(self.chain_alias, int(self.timeout * 1000)) from e
        except httpx.RequestError as e:
            logger.error("rpc_request_error", chain=self.chain_alias, path=path, error=str(e))
            raise RpcError(f"RPC request failed: {e}", self.chain_alias, cause=e)

        if response.status_code == 404:
            return None

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            retry_ms = int(float(retry_after) * 1000) if retry_after and retry_after.isdigit() else None
            logger.warning("rpc_rate_limited", chain=self.chain_alias, path=path)
            raise RateLimitError(self.chain_alias, retry_ms)

        if response.status_code >= 400:
            error_msg = response.text
            logger.error(
                "rpc_request_failed",
                chain=self.chain_alias,
                path=path,
                status=response.status_code,
                error=error_msg,
            )
            raise RpcError(
                f"RPC error {response.status_code}: {error_msg}",
                self.chain_alias,
                code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise RpcError(f"RPC returned invalid JSON: {e}", self.chain_alias, cause=e)

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, payload: Any = None, **kwargs) -> Any:
        return await self.request("POST", path, json=payload, **kwargs)

    async def call(self, method: str, params: Optional[Union[List[Any], Dict[str, Any]]] = None) -> Any:
        """
        Perform a JSON-RPC 2.0 call.

        Args:
            method: RPC method name
            params: Positional or named parameters

        Returns:
            The ``result`` member of the response

        Raises:
            RpcError: If the response carries an ``error`` member
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params if params is not None else [],
        }
        data = await self.post("", payload)

        if data is None:
            raise RpcError(f"RPC endpoint not found for {method}", self.chain_alias, code=404)

        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            logger.error("rpc_call_failed", chain=self.chain_alias, method=method, code=code, error=message)
            raise RpcError(message, self.chain_alias, code=code)

        return data.get("result")


@asynccontextmanager
async def rpc_session(
    chain_alias: str,
    default: Optional[RpcClient],
    rpc_url: Optional[str] = None,
    fallback_url: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> AsyncIterator[RpcClient]:
    """
    Yield the client to broadcast with.

    Reuses ``default`` unless a different endpoint is requested, in which
    case a short-lived client is opened and closed around the block.
    """
    if default is not None and rpc_url is None:
        yield default
        return

    client = RpcClient(chain_alias, rpc_url or fallback_url or "", headers=headers)
    try:
        yield client
    finally:
        await client.close()
