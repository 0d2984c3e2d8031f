# via/domain/services/normalizer.py
"""
Turn the untyped result of a catalog-search tool into NormalizedProduct items.

Seller integrations do not share a schema, so every field is looked up
through an ordered list of paths into the JSON tree. The first path that
yields a usable value wins. Supporting a new upstream shape means adding
one path to the relevant list below.
"""
from __future__ import annotations
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union
import json
import logging
import re

from via.domain.models.offer import NormalizedProduct
from via.domain.services.constants import CURRENCY_SYMBOLS

logger = logging.getLogger(__name__)

Path = Tuple[Union[str, int], ...]

# =============================================================================
#                               SHAPE REGISTRY
# =============================================================================

# Where the product list may live; first non-empty list wins.
CONTAINER_PATHS: List[Path] = [
    (),
    ("products",),
    ("items",),
    ("results",),
    ("data", "products"),
    ("data", "items"),
    ("data",),
    ("products", "edges"),
    ("data", "products", "edges"),
    ("catalog", "products", "edges"),
]

# Entries may be wrapped: {node: {...}} for connections, {product: {...}} for search hits.
WRAPPER_KEYS = ("node", "product")

TITLE_PATHS: List[Path] = [
    ("title",),
    ("name",),
    ("product_title",),
    ("productTitle",),
]

# Merchant-formatted strings ("£129", "AUD 199"); bare numbers are amounts instead.
FORMATTED_PRICE_PATHS: List[Path] = [
    ("priceText",),
    ("price_text",),
    ("price_string",),
    ("formattedPrice",),
    ("formatted_price",),
    ("price",),
]

FLAT_CURRENCY_PATHS: List[Path] = [
    ("currency",),
    ("currencyCode",),
    ("currency_code",),
]

# (amount path, currency paths) pairs: flat, range/min-variant, first variant.
AMOUNT_PATHS: List[Tuple[Path, List[Path]]] = [
    (("price",), FLAT_CURRENCY_PATHS),
    (("amount",), FLAT_CURRENCY_PATHS),
    (("price_amount",), FLAT_CURRENCY_PATHS),
    (("price", "amount"), [("price", "currencyCode"), ("price", "currency_code"), ("price", "currency")]),
    (("priceRange", "minVariantPrice", "amount"), [("priceRange", "minVariantPrice", "currencyCode")]),
    (("price_range", "min"), [("price_range", "currency"), ("price_range", "currencyCode")]),
    (("variants", 0, "price"), [("variants", 0, "currency"), ("variants", 0, "currencyCode")]),
    (("variants", 0, "price", "amount"), [("variants", 0, "price", "currencyCode")]),
    (("variants", "edges", 0, "node", "price", "amount"), [("variants", "edges", 0, "node", "price", "currencyCode")]),
]

IMAGE_PATHS: List[Path] = [
    ("imageUrl",),
    ("image_url",),
    ("image",),
    ("image", "url"),
    ("image", "src"),
    ("variants", 0, "image_url"),
    ("variants", 0, "image", "url"),
    ("featuredImage", "url"),
    ("featured_image", "url"),
    ("featured_image", "src"),
    ("featured_image",),
    ("images", 0),
    ("images", 0, "url"),
    ("images", 0, "src"),
    ("images", "edges", 0, "node", "url"),
]

URL_PATHS: List[Path] = [
    ("productUrl",),
    ("product_url",),
    ("url",),
    ("onlineStoreUrl",),
    ("online_store_url",),
    ("link",),
    ("variants", 0, "url"),
]

HANDLE_PATHS: List[Path] = [
    ("handle",),
    ("slug",),
]

JSON_BLOCK_TYPES = {"json", "application/json"}

# Bare amounts use "." for decimals and "," only in whole thousand groups ("1,299.50").
_BARE_NUMBER_RE = re.compile(r"^(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")
_NUMBER_IN_TEXT_RE = re.compile(r"\d[\d.,]*")
_GROUPED_RE = {",": re.compile(r"\d{1,3}(?:,\d{3})+"), ".": re.compile(r"\d{1,3}(?:\.\d{3})+")}
_SYMBOL_TO_CODE = {sym: code for code, sym in CURRENCY_SYMBOLS.items()}

# =============================================================================
#                               TREE HELPERS
# =============================================================================

def _dig(obj: Any, path: Path) -> Any:
    """Follow `path` through dicts/lists; None as soon as a step is missing."""
    cur = obj
    for step in path:
        if isinstance(step, int):
            if not isinstance(cur, list) or len(cur) <= step:
                return None
            cur = cur[step]
        else:
            if not isinstance(cur, dict):
                return None
            cur = cur.get(step)
        if cur is None:
            return None
    return cur


def _first_string(obj: Any, paths: Iterable[Path]) -> str:
    for path in paths:
        v = _dig(obj, path)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return ""


def _safe_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, TypeError, RecursionError):
        return None

# =============================================================================
#                               ENVELOPE
# =============================================================================

def extract_payload(body: Any) -> Any:
    """
    Unwrap a tools/call response down to the tool's own payload.
    Order: explicit JSON content block, then JSON inside a text block,
    then the envelope itself.
    """
    result = body.get("result") if isinstance(body, dict) and "result" in body else body

    if not isinstance(result, dict):
        return result

    # Some servers return the catalog object directly as the result
    if any(k in result for k in ("products", "items", "results")):
        return result

    structured = result.get("structuredContent")
    if isinstance(structured, (dict, list)) and structured:
        return structured

    content = result.get("content")
    if not isinstance(content, list) or not content:
        return result

    for block in content:
        if isinstance(block, dict) and block.get("type") in JSON_BLOCK_TYPES and block.get("data") is not None:
            return block["data"]

    texts = [
        block["text"].strip()
        for block in content
        if isinstance(block, dict) and isinstance(block.get("text"), str) and block["text"].strip()
    ]
    if not texts:
        return result

    for text in texts:
        parsed = _safe_json(text)
        if isinstance(parsed, (dict, list)):
            return parsed

    return {"text": "\n".join(texts)}


def _candidate_list(payload: Any) -> List[Any]:
    for path in CONTAINER_PATHS:
        v = _dig(payload, path) if path else payload
        if isinstance(v, list) and v:
            return v
    return []


def _unwrap(entry: Any) -> Any:
    if isinstance(entry, dict):
        for key in WRAPPER_KEYS:
            inner = entry.get(key)
            if isinstance(inner, dict):
                return inner
    return entry

# =============================================================================
#                               PRICES
# =============================================================================

def coerce_amount(value: Any) -> Optional[float]:
    """Numbers and bare numeric strings ("45.00", "1,299") become floats; "1.299,00" does not."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        s = value.strip()
        if _BARE_NUMBER_RE.match(s):
            return float(s.replace(",", ""))
    return None


def format_price(amount: float, currency: str = "") -> str:
    """
    Whole amounts render without decimals, fractional ones with two:
    (129, "GBP") -> "£129", (129.5, "GBP") -> "£129.50", (50, "XYZ") -> "XYZ 50".
    """
    value = float(amount)
    num = str(int(value)) if value.is_integer() else f"{value:.2f}"
    code = (currency or "").strip().upper()
    if not code:
        return num
    symbol = CURRENCY_SYMBOLS.get(code)
    return f"{symbol}{num}" if symbol else f"{code} {num}"


def parse_number(token: str) -> Optional[float]:
    """
    Read a number written with either separator convention:
    "1,299.50" and "1.299,50" -> 1299.5, "12,50" -> 12.5, "1,299" -> 1299.
    With both separators the last one is the decimal mark. None when unreadable.
    """
    s = token.strip().rstrip(".,")
    has_comma, has_dot = "," in s, "." in s
    if has_comma and has_dot:
        decimal, group = (",", ".") if s.rfind(",") > s.rfind(".") else (".", ",")
        s = s.replace(group, "").replace(decimal, ".")
    elif has_comma:
        if _GROUPED_RE[","].fullmatch(s):
            s = s.replace(",", "")
        elif s.count(",") == 1:
            s = s.replace(",", ".")
        else:
            return None
    elif has_dot and s.count(".") > 1:
        if not _GROUPED_RE["."].fullmatch(s):
            return None
        s = s.replace(".", "")
    try:
        return float(s)
    except ValueError:
        return None


def _parse_formatted(text: str) -> Tuple[Optional[float], str]:
    """Best-effort (amount, currency) from a merchant price string."""
    m = _NUMBER_IN_TEXT_RE.search(text)
    amount = parse_number(m.group(0)) if m else None
    currency = ""
    for symbol, code in _SYMBOL_TO_CODE.items():
        if symbol in text:
            currency = code
            break
    if not currency:
        code_match = re.search(r"\b([A-Z]{3})\b", text)
        if code_match:
            currency = code_match.group(1)
    return amount, currency


def extract_price(prod: Any) -> Tuple[str, Optional[float], str]:
    """Return (price_text, amount, currency) for one product node."""
    for path in FORMATTED_PRICE_PATHS:
        v = _dig(prod, path)
        if isinstance(v, str) and v.strip() and coerce_amount(v) is None:
            amount, currency = _parse_formatted(v.strip())
            return v.strip(), amount, currency

    flat_currency = _first_string(prod, FLAT_CURRENCY_PATHS)
    for amount_path, currency_paths in AMOUNT_PATHS:
        amount = coerce_amount(_dig(prod, amount_path))
        if amount is None:
            continue
        currency = (_first_string(prod, currency_paths) or flat_currency).upper()
        return format_price(amount, currency), amount, currency

    return "", None, ""

# =============================================================================
#                               URLS
# =============================================================================

def _is_absolute(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


def resolve_product_url(prod: Any, store_base_url: str) -> str:
    """
    Absolute URL if any, else root-relative path joined to the store,
    else /products/{handle}, else the store base URL itself.
    """
    base = (store_base_url or "").rstrip("/")
    found = [v.strip() for v in (_dig(prod, p) for p in URL_PATHS) if isinstance(v, str) and v.strip()]

    for url in found:
        if _is_absolute(url):
            return url
    for url in found:
        if url.startswith("/") and not url.startswith("//") and base:
            return base + url

    handle = _first_string(prod, HANDLE_PATHS)
    if handle and base:
        return f"{base}/products/{handle.strip('/')}"

    return store_base_url or ""

# =============================================================================
#                               PUBLIC API
# =============================================================================

def normalize_product(entry: Any, store_base_url: str) -> Optional[NormalizedProduct]:
    prod = _unwrap(entry)
    if not isinstance(prod, dict):
        return None

    title = _first_string(prod, TITLE_PATHS)
    if not title:
        return None

    price_text, amount, currency = extract_price(prod)
    return NormalizedProduct(
        title=title,
        price_text=price_text,
        image_url=_first_string(prod, IMAGE_PATHS),
        product_url=resolve_product_url(prod, store_base_url),
        price_amount=amount,
        currency=currency,
    )


def normalize(raw_payload: Any, store_base_url: str) -> List[NormalizedProduct]:
    """
    Extract products from a raw tool result, keeping source order.
    Entries without a title are dropped; nothing here raises on odd input.
    """
    payload = extract_payload(raw_payload)
    candidates = _candidate_list(payload)
    out: List[NormalizedProduct] = []
    for entry in candidates:
        p = normalize_product(entry, store_base_url)
        if p is not None:
            out.append(p)
    logger.debug("normalize candidates=%s kept=%s base=%s", len(candidates), len(out), store_base_url)
    return out
