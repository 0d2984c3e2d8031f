# via/api/v1/schemas/thread.py
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from via.domain.models.offer import DiagnosticTrace
from via.domain.services.intent_svc import ClarifyTurn, IntentPlan


class _CamelIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateThreadIn(_CamelIn):
    request_text: str = Field("", alias="requestText")
    mode: Literal["buyer", "seller"] = "buyer"
    debug: bool = False
    intent_plan: Optional[IntentPlan] = Field(None, alias="intentPlan")


class SelectOfferIn(_CamelIn):
    offer_id: str = Field("", alias="offerId")


class MessageIn(_CamelIn):
    text: str = ""


class ClarifyIn(_CamelIn):
    user_text: str = Field("", alias="userText")
    history: List[ClarifyTurn] = []


class UIOffer(BaseModel):
    id: str
    sellerName: str
    headline: str
    imageUrl: str
    productUrl: str
    sourceLabel: str
    priceText: str
    deliveryText: str
    reliabilityLabel: str
    fastReplyLabel: str


class UIEvent(BaseModel):
    id: str
    ts: str
    who: str
    text: str


class Kpis(BaseModel):
    elapsedSeconds: float
    offersCount: int
    stageLabel: str
    confirmed: bool
    category: str
    noMatches: bool


class ThreadOut(BaseModel):
    threadId: str
    status: str
    requestText: str
    selectedOfferId: Optional[str] = None
    offers: List[UIOffer]
    events: List[UIEvent]
    kpis: Kpis
    token: str
    debug: Optional[DiagnosticTrace] = None


class ClarifyOut(BaseModel):
    next_action: Literal["ASK_ONE_QUESTION", "BROADCAST_NOW"]
    question_count_server: int
    intent_plan: IntentPlan


class StoreHealth(BaseModel):
    id: str
    name: str
    mcp_url: str
    tools_ok: bool
    tool_count: int = 0
    has_search_shop_catalog: bool = False
    search_ok: bool = False
    search_tool_used: Optional[str] = None
    search_error: Optional[str] = None
    sample: Optional[Dict[str, Any]] = None
