import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from via.domain.models.offer import IntentSpec, SellerEndpoint


def make_store(sid: str, category: str = "cycling", weight: int = 100, **kw) -> SellerEndpoint:
    return SellerEndpoint(
        id=sid,
        name=kw.pop("name", sid.title()),
        category=category,
        domain=kw.pop("domain", f"{sid}.example.com"),
        mcp_url=kw.pop("mcp_url", f"https://{sid}.example.com/api/mcp"),
        weight=weight,
        **kw,
    )


def rpc_result(result: Any, req_id: int = 1) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


def tools_result(*names: str) -> Dict[str, Any]:
    return rpc_result({"tools": [{"name": n, "description": n} for n in names]})


def text_block(payload: Any) -> Dict[str, Any]:
    return rpc_result({"content": [{"type": "text", "text": json.dumps(payload)}]})


class FakeStore:
    """
    Scripted catalog endpoint: answers tools/list with `tools` and every
    tools/call with `search`. Either may be a callable that raises.
    """

    def __init__(self, tools: Any = None, search: Any = None):
        self.tools = tools if tools is not None else tools_result("search_shop_catalog")
        self.search = search if search is not None else text_block({"products": []})
        self.calls: List[Dict[str, Any]] = []

    @staticmethod
    def last_args(request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content)["params"].get("arguments", {})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.calls.append(body)
        answer = self.tools if body["method"] == "tools/list" else self.search
        if callable(answer):
            answer = answer(request)
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json=answer)


def raise_timeout(request: httpx.Request):
    raise httpx.ReadTimeout("read timed out", request=request)


def raise_connect(request: httpx.Request):
    raise httpx.ConnectError("connection refused", request=request)


def routed_client(routes: Dict[str, Callable[[httpx.Request], httpx.Response]]) -> httpx.AsyncClient:
    """AsyncClient whose requests are dispatched to a handler by host."""

    def handler(request: httpx.Request) -> httpx.Response:
        fn: Optional[Callable] = routes.get(request.url.host)
        if fn is None:
            raise httpx.ConnectError("unknown host", request=request)
        return fn(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def helmet_spec() -> IntentSpec:
    return IntentSpec(
        category="cycling",
        core_item="helmet",
        required_terms=["helmet"],
        excluded_terms=["hat"],
        search_query="commuter helmet",
    )
