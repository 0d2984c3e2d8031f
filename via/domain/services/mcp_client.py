# via/domain/services/mcp_client.py
"""
JSON-RPC client for seller catalog endpoints (tools/list + tools/call).

Every call is bounded by its own deadline and every fault (network, HTTP
status, body that is not JSON, remote error object) comes back as a
failed RawToolResult. Nothing here raises to the caller.
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import asyncio
import itertools
import json
import logging
import time

import httpx

from via.domain.models.offer import RawToolResult, SearchOutcome, ToolInfo
from via.domain.services.constants import (
    JSONRPC_VERSION,
    METHOD_TOOLS_LIST,
    METHOD_TOOLS_CALL,
    CATALOG_SEARCH_TOOL,
)
from via.domain.services.normalizer import normalize

logger = logging.getLogger(__name__)

HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/event-stream",
}

_ids = itertools.count(1)

# =============================================================================
#                               TRANSPORT
# =============================================================================

def _parse_body(text: str, content_type: str) -> Any:
    """JSON body, or the last JSON `data:` frame of an event-stream reply."""
    if "text/event-stream" in (content_type or ""):
        parsed = None
        for line in text.splitlines():
            if line.startswith("data:"):
                try:
                    parsed = json.loads(line[5:].strip())
                except (ValueError, RecursionError):
                    continue
        return parsed
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        # undecodable or nested deeper than the interpreter can follow
        return None


def _rpc_error(body: Any) -> Optional[str]:
    if not isinstance(body, dict) or not body.get("error"):
        return None
    err = body["error"]
    if isinstance(err, dict):
        return str(err.get("message") or err)[:200]
    return str(err)[:200]


async def _rpc_post(
    http: httpx.AsyncClient,
    url: str,
    method: str,
    params: Dict[str, Any],
    timeout_s: float,
    tool_name: Optional[str] = None,
) -> RawToolResult:
    """
    One request/response exchange. The deadline cancels the in-flight
    request instead of leaving it running.
    """
    req = {"jsonrpc": JSONRPC_VERSION, "id": next(_ids), "method": method, "params": params}
    t0 = time.perf_counter()
    try:
        resp = await asyncio.wait_for(
            http.post(url, json=req, headers=HEADERS, timeout=timeout_s),
            timeout=timeout_s,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        logger.warning("mcp %s timeout url=%s after=%.1fs", method, url, time.perf_counter() - t0)
        return RawToolResult(ok=False, status=0, tool_name=tool_name,
                             error=f"Timed out after {timeout_s:g}s", timed_out=True)
    except httpx.HTTPError as e:
        logger.warning("mcp %s transport error url=%s err=%s", method, url, e)
        return RawToolResult(ok=False, status=0, text=str(e), tool_name=tool_name,
                             error=f"{type(e).__name__}: {e}"[:200])
    except Exception as e:
        logger.warning("mcp %s unexpected error url=%s err=%s", method, url, e)
        return RawToolResult(ok=False, status=0, text=str(e), tool_name=tool_name,
                             error=f"{type(e).__name__}: {e}"[:200])

    text = resp.text
    body = _parse_body(text, resp.headers.get("content-type", ""))
    dt = time.perf_counter() - t0
    logger.debug("mcp %s url=%s status=%s time=%.3fs body=%s", method, url, resp.status_code, dt, text[:300])

    if not resp.is_success:
        return RawToolResult(ok=False, status=resp.status_code, body=body, text=text, tool_name=tool_name,
                             error=f"HTTP {resp.status_code} {text[:160]}".strip())
    if body is None:
        return RawToolResult(ok=False, status=resp.status_code, text=text, tool_name=tool_name,
                             error="Response body is not JSON")
    if rpc_err := _rpc_error(body):
        return RawToolResult(ok=False, status=resp.status_code, body=body, text=text, tool_name=tool_name,
                             error=rpc_err)
    return RawToolResult(ok=True, status=resp.status_code, body=body, text=text, tool_name=tool_name)

# =============================================================================
#                               DISCOVERY
# =============================================================================

def _tools_from_body(body: Any) -> List[ToolInfo]:
    raw = body.get("result", {}).get("tools") if isinstance(body, dict) and isinstance(body.get("result"), dict) else None
    if not isinstance(raw, list):
        return []
    tools: List[ToolInfo] = []
    for t in raw:
        if isinstance(t, dict) and isinstance(t.get("name"), str) and t["name"].strip():
            tools.append(ToolInfo(
                name=t["name"].strip(),
                description=t.get("description") if isinstance(t.get("description"), str) else None,
                input_schema=t.get("inputSchema") if isinstance(t.get("inputSchema"), dict) else None,
            ))
    return tools


async def _list_tools_raw(http: httpx.AsyncClient, url: str, timeout_s: float) -> Tuple[List[ToolInfo], RawToolResult]:
    r = await _rpc_post(http, url, METHOD_TOOLS_LIST, {}, timeout_s)
    return (_tools_from_body(r.body) if r.ok else []), r


async def list_tools(http: httpx.AsyncClient, url: str, timeout_s: float = 6.0) -> List[ToolInfo]:
    """Tools advertised by the endpoint; empty on any failure."""
    tools, _ = await _list_tools_raw(http, url, timeout_s)
    return tools


def select_search_tool(tools: Sequence[Union[ToolInfo, str]]) -> Optional[str]:
    """
    Priority: exact catalog-search name, then search + catalog/product/shop,
    then any search tool, else None.
    """
    names = [t.name if isinstance(t, ToolInfo) else str(t) for t in tools]
    if CATALOG_SEARCH_TOOL in names:
        return CATALOG_SEARCH_TOOL

    def _has(n: str, *words: str) -> bool:
        low = n.lower()
        return any(w in low for w in words)

    for n in names:
        if _has(n, "search") and _has(n, "catalog", "product", "shop"):
            return n
    for n in names:
        if _has(n, "search"):
            return n
    return None

# =============================================================================
#                               INVOCATION
# =============================================================================

async def invoke_tool(
    http: httpx.AsyncClient,
    url: str,
    tool_name: str,
    arguments: Dict[str, Any],
    timeout_s: float = 9.0,
) -> RawToolResult:
    return await _rpc_post(
        http, url, METHOD_TOOLS_CALL, {"name": tool_name, "arguments": arguments}, timeout_s, tool_name=tool_name,
    )


def search_attempts(query: str, limit: int) -> List[Dict[str, Any]]:
    """Argument shapes seen across integrations, tried in order."""
    return [
        {"query": query, "limit": limit},
        {"query": query, "first": limit},
        {"query": query, "count": limit},
        {"q": query, "limit": limit},
    ]


def _failure_kind(r: RawToolResult) -> str:
    if r.timed_out:
        return "timeout"
    if r.status == 0:
        return "transport_error"
    return "protocol_error"


async def search_products(
    http: httpx.AsyncClient,
    *,
    mcp_url: str,
    store_base_url: str,
    query: str,
    list_timeout_s: float = 6.0,
    call_timeout_s: float = 9.0,
    limit: int = 6,
) -> SearchOutcome:
    """
    Discover the search tool, then try argument shapes until one yields
    a non-empty normalized product list.
    """
    tools, listed = await _list_tools_raw(http, mcp_url, list_timeout_s)
    if not listed.ok:
        return SearchOutcome(ok=False, error=listed.error or "No tools/list response", failure=_failure_kind(listed))
    if not tools:
        return SearchOutcome(ok=False, error="No tools/list response", failure="protocol_error")

    tool_name = select_search_tool(tools)
    if not tool_name:
        return SearchOutcome(ok=False, error="No search tool found", failure="no_tool")

    last_err = ""
    failure = "no_products"
    for args in search_attempts(query, limit):
        r = await invoke_tool(http, mcp_url, tool_name, args, call_timeout_s)
        if not r.ok:
            last_err = r.error or f"HTTP {r.status}"
            failure = _failure_kind(r)
            if r.status == 0:
                # network-level faults do not depend on argument shape
                break
            continue

        products = normalize(r.body, store_base_url)
        if products:
            logger.info("mcp search ok url=%s tool=%s args=%s products=%s", mcp_url, tool_name, list(args), len(products))
            return SearchOutcome(ok=True, products=products, tool_used=tool_name)
        last_err = "Search returned 0 usable products (parse mismatch or irrelevant results)"
        failure = "no_products"

    return SearchOutcome(
        ok=False,
        tool_used=tool_name,
        error=last_err or "Search returned no products",
        failure=failure,
    )
