from pydantic import BaseModel, Field
from typing import Any, List, Literal, Optional

Category = Literal["sneakers", "outdoor", "cycling", "pet"]
ReliabilityLabel = Literal["Verified", "Reliable", "New"]
StoreOutcome = Literal[
    "accepted",
    "rejected",
    "no_products",
    "no_tool",
    "transport_error",
    "timeout",
    "protocol_error",
    "skipped",
]


class SellerEndpoint(BaseModel):
    """One seller catalog reachable over a remote tool-invocation URL."""
    id: str
    name: str
    category: Category
    domain: Optional[str] = None
    mcp_url: str
    enabled: bool = True
    weight: int = 100
    tags: List[str] = []

    model_config = {"frozen": True}  # immuable = safe

    @property
    def base_url(self) -> str:
        if self.domain:
            return f"https://{self.domain}"
        url = self.mcp_url.rstrip("/")
        if url.lower().endswith("/api/mcp"):
            url = url[: -len("/api/mcp")]
        return url


class IntentSpec(BaseModel):
    category: Optional[Category] = None
    core_item: str = ""
    required_terms: List[str] = []
    preferred_terms: List[str] = []
    excluded_terms: List[str] = []
    search_query: str = ""
    broadcast_intent: str = ""
    max_price: Optional[float] = None
    model_config = {"frozen": True}


class ToolInfo(BaseModel):
    name: str
    description: Optional[str] = None
    input_schema: Optional[dict] = None
    model_config = {"frozen": True}


class RawToolResult(BaseModel):
    ok: bool
    status: int = 0
    body: Any = None          # parsed JSON tree, None when unparseable
    text: str = ""
    tool_name: Optional[str] = None
    error: Optional[str] = None
    timed_out: bool = False
    model_config = {"frozen": True}


class NormalizedProduct(BaseModel):
    title: str = Field(..., min_length=1)
    price_text: str = ""
    image_url: str = ""
    product_url: str = ""
    price_amount: Optional[float] = None
    currency: str = ""
    model_config = {"frozen": True}


class SearchOutcome(BaseModel):
    """Result of discovery + invocation against one endpoint."""
    ok: bool
    products: List[NormalizedProduct] = []
    tool_used: Optional[str] = None
    error: Optional[str] = None
    failure: Optional[StoreOutcome] = None
    model_config = {"frozen": True}


class OfferPolicy(BaseModel):
    min_price_pence: int = 0
    can_upgrade_delivery: bool = True
    upgrade_fee_pence: int = 500
    max_discount_pence: int = 700
    model_config = {"frozen": True}


class Offer(BaseModel):
    id: str
    seller_id: str
    seller_name: str
    headline: str
    image_url: str
    product_url: str
    price_pence: int = 0
    currency: str = "GBP"
    price_text_override: str = ""   # authoritative for live offers
    delivery_days: int = 3
    reliability_label: ReliabilityLabel = "Reliable"
    reply_class: Literal["fast", "normal"] = "normal"
    arrival_delay_ms: int = 0
    source_label: str = ""
    policy: OfferPolicy = OfferPolicy()
    model_config = {"frozen": True}


class StoreDiagnostic(BaseModel):
    store_id: str
    store_name: str
    ok: bool = False
    tool_used: Optional[str] = None
    product_count: int = 0
    error: Optional[str] = None
    outcome: StoreOutcome = "skipped"
    reason: str = ""
    accepted_in_pass: Optional[int] = None
    first_product: Optional[NormalizedProduct] = None
    model_config = {"frozen": True}


class DiagnosticTrace(BaseModel):
    category: Optional[str] = None
    cleaned_query: str = ""
    required_terms: List[str] = []
    candidate_stores: List[dict] = []
    contacted: int = 0
    collected_offers: int = 0
    store_results: List[StoreDiagnostic] = []
    fatal: Optional[str] = None
    model_config = {"frozen": True}


class AcquisitionResult(BaseModel):
    offers: List[Offer]
    diagnostics: DiagnosticTrace
    model_config = {"frozen": True}
