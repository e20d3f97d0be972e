"""
Pytest configuration and shared fixtures for the test suite.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from chainkit.config import ChainkitConfig, set_config
from chainkit.core.chains import ChainConfig, get_chain_config
from chainkit.core.rpc import RpcClient
from chainkit.registry import clear_provider_cache


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def test_config() -> ChainkitConfig:
    """Install a deterministic configuration for every test."""
    config = ChainkitConfig(
        _env_file=None,
        rpc_overrides={},
        request_timeout_seconds=5.0,
        log_level="DEBUG",
    )
    set_config(config)
    clear_provider_cache()
    yield config
    clear_provider_cache()
    set_config(None)


def chain_config(alias: str, rpc_url: Optional[str] = None) -> ChainConfig:
    return get_chain_config(alias, rpc_url or "http://node.test")


# ============================================================================
# Mock Transports
# ============================================================================

Handler = Callable[[httpx.Request], httpx.Response]


def make_rpc(alias: str, handler: Handler, base_url: str = "http://node.test") -> RpcClient:
    """Create an RpcClient whose requests are answered by ``handler``."""
    return RpcClient(alias, base_url, transport=httpx.MockTransport(handler))


class JsonRpcMock:
    """
    JSON-RPC 2.0 responder keyed by method name.

    Values are either a result or a callable taking the params. Every
    request is recorded for assertions.
    """

    def __init__(self, results: Optional[Dict[str, Any]] = None):
        self.results: Dict[str, Any] = dict(results or {})
        self.errors: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Dict[str, Any]] = []

    def fail(self, method: str, code: int, message: str) -> None:
        self.errors[method] = {"code": code, "message": message}

    def methods(self) -> List[str]:
        return [call["method"] for call in self.calls]

    def params(self, method: str) -> Any:
        for call in self.calls:
            if call["method"] == method:
                return call["params"]
        raise AssertionError(f"{method} was not called")

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.calls.append(payload)
        method = payload["method"]

        if method in self.errors:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "error": self.errors[method]})
        if method not in self.results:
            return httpx.Response(200, json={
                "jsonrpc": "2.0",
                "id": payload["id"],
                "error": {"code": -32601, "message": f"Method not found: {method}"},
            })

        result = self.results[method]
        if callable(result):
            result = result(payload["params"])
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})


class RestMock:
    """
    REST responder keyed by (HTTP method, path).

    Values are a JSON body, a callable taking the request, or an
    httpx.Response returned as is. Unknown routes answer 404.
    """

    def __init__(self, routes: Optional[Dict[Any, Any]] = None):
        self.routes: Dict[Any, Any] = dict(routes or {})
        self.requests: List[httpx.Request] = []

    def bodies(self, path: str) -> List[Any]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path and r.content]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if isinstance(route, httpx.Response):
            return route
        if callable(route):
            route = route(request)
            if isinstance(route, httpx.Response):
                return route
        return httpx.Response(200, json=route)


@pytest.fixture
def json_rpc() -> JsonRpcMock:
    return JsonRpcMock()


@pytest.fixture
def rest() -> RestMock:
    return RestMock()
