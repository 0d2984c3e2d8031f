from pydantic import BaseModel
from typing import List, Literal, Optional

from via.domain.models.offer import Offer

Mode = Literal["buyer", "seller"]
ThreadCategory = Literal["sneakers", "outdoor", "cycling", "pet", "other"]
ThreadStatus = Literal["COLLECTING_OFFERS", "OFFER_SELECTED", "AGREED", "COMPLETED"]
Speaker = Literal["You", "Your assistant", "Seller assistant"]


class ThreadEvent(BaseModel):
    id: str
    ts: str
    who: Speaker
    text: str
    model_config = {"frozen": True}


class Terms(BaseModel):
    price_pence: Optional[int] = None
    delivery_days: Optional[int] = None
    notes: List[str] = []
    model_config = {"frozen": True}


class InternalThread(BaseModel):
    """
    Whole session state. Never stored server-side: it round-trips
    inside the signed token after every transition.
    """
    v: int = 1
    thread_id: str
    created_at: str
    mode: Mode = "buyer"
    request_text: str
    category: ThreadCategory = "other"
    status: ThreadStatus = "COLLECTING_OFFERS"
    selected_offer_id: Optional[str] = None
    offers: List[Offer] = []
    events: List[ThreadEvent] = []
    terms: Terms = Terms()
    confirmed: bool = False
    acquisition_done: bool = False
    model_config = {"frozen": True}
