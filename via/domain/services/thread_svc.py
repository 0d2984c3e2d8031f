# via/domain/services/thread_svc.py

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging
import secrets

from via.domain.models.offer import Offer
from via.domain.models.thread import InternalThread, Mode, Terms, ThreadEvent
from via.domain.services.constants import (
    CATEGORY_LABELS,
    CATEGORY_OTHER,
    LIVE_SOURCE_LABEL,
    PRICE_UNKNOWN_TEXT,
)
from via.domain.services.intent_svc import classify_intent
from via.domain.services.mock_offers import mock_offers_for_category
from via.domain.services.normalizer import format_price

logger = logging.getLogger(__name__)

FASTER_WORDS = ["next day", "tomorrow", "express", "fast delivery", "overnight"]
DISCOUNT_WORDS = ["discount", "cheaper", "best price", "lower", "reduce", "deal", "%"]

# --- helpers ---------------------------------------------------------------

def new_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(8)}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _event(who: str, text: str, ts: Optional[str] = None) -> ThreadEvent:
    return ThreadEvent(id=new_id("e"), ts=ts or _now_iso(), who=who, text=text)


def to_price_text(pence: int, currency: str) -> str:
    return format_price(round(pence / 100), currency or "GBP")


def delivery_text(days: int) -> str:
    if days <= 1:
        return "Delivery: next day"
    if days == 2:
        return "Delivery: 2 days"
    return f"Delivery: {days} days"


def _contains_any(s: str, needles: List[str]) -> bool:
    x = s.lower()
    return any(n in x for n in needles)


def _find_offer(t: InternalThread, offer_id: Optional[str]) -> Optional[Offer]:
    if not offer_id:
        return None
    return next((o for o in t.offers if o.id == offer_id), None)


def _is_live(offer: Offer) -> bool:
    # live prices come as store text only; pence stay 0
    return offer.source_label == LIVE_SOURCE_LABEL


def offer_price_text(offer: Offer) -> str:
    override = offer.price_text_override.strip()
    if override:
        return override
    if _is_live(offer):
        return PRICE_UNKNOWN_TEXT
    return to_price_text(offer.price_pence, offer.currency)


def _terms_text(offer: Offer, price_pence: int, days: int, upgraded: bool) -> str:
    if _is_live(offer):
        price = offer_price_text(offer)
        if upgraded and offer.policy.upgrade_fee_pence:
            price += f" + {to_price_text(offer.policy.upgrade_fee_pence, 'GBP')} express"
    else:
        price = to_price_text(price_pence, offer.currency)
    return f"{price} with {delivery_text(days)}"

# --- lifecycle --------------------------------------------------------------

def make_initial_thread(request_text: str, mode: Mode = "buyer", category: Optional[str] = None) -> InternalThread:
    """`category` comes from a clarified intent plan; otherwise the text is classified."""
    created = _now_iso()
    category = category or classify_intent(request_text)
    text = request_text.strip()
    return InternalThread(
        thread_id=new_id("t"),
        created_at=created,
        mode=mode,
        request_text=text,
        category=category,
        offers=mock_offers_for_category(category),
        events=[
            _event("You", text, created),
            _event("Your assistant", "Got it. I’m collecting offers from participating sellers now.", created),
        ],
    )


def apply_live_offers(
    t: InternalThread,
    offers: List[Offer],
    *,
    contacted: int,
    use_mock_fallback: bool = True,
) -> InternalThread:
    """
    Swap the canned offers for live ones when at least one arrived.
    With no live offers the canned set stays, unless fallback is off,
    in which case the thread ends up with an explicit empty result.
    """
    if offers:
        events = [*t.events, _event(
            "Your assistant",
            f"I contacted {contacted} participating sellers. Live responses are coming in now.",
        )]
        return t.model_copy(update={"offers": list(offers), "events": events, "acquisition_done": True})

    logger.info("no live offers thread=%s fallback=%s", t.thread_id, use_mock_fallback)
    if use_mock_fallback:
        return t.model_copy(update={"acquisition_done": True})

    events = [*t.events, _event("Your assistant", "No matching offers right now. Try a broader request.")]
    return t.model_copy(update={"offers": [], "events": events, "acquisition_done": True})


def select_offer(t: InternalThread, offer_id: str) -> InternalThread:
    offer = _find_offer(t, offer_id)
    if not offer:
        return t

    now = _now_iso()
    events = [
        *t.events,
        _event("Your assistant", f"I’ll speak to {offer.seller_name} based on this offer and come back with agreed terms.", now),
        _event("Seller assistant", "Thanks. I can confirm availability. Tell me if you want delivery changes or price adjustments.", now),
    ]
    return t.model_copy(update={
        "status": "OFFER_SELECTED",
        "selected_offer_id": offer_id,
        "events": events,
        "terms": Terms(price_pence=offer.price_pence, delivery_days=offer.delivery_days, notes=[]),
    })


def buyer_message(t: InternalThread, text: str) -> InternalThread:
    """Canned negotiation: faster delivery for a fee, or a discount within policy."""
    offer = _find_offer(t, t.selected_offer_id)
    now = _now_iso()
    events = [*t.events, _event("You", text.strip(), now)]

    if not offer:
        events.append(_event("Your assistant", "Pick an offer first, then I can negotiate with that seller.", now))
        return t.model_copy(update={"events": events})

    price = t.terms.price_pence if t.terms.price_pence is not None else offer.price_pence
    delivery = t.terms.delivery_days if t.terms.delivery_days is not None else offer.delivery_days
    notes = list(t.terms.notes)
    upgraded = "Delivery upgraded" in notes

    if _contains_any(text, FASTER_WORDS):
        if offer.policy.can_upgrade_delivery and delivery > 1:
            delivery = max(1, delivery - 1)
            if not _is_live(offer):
                price += offer.policy.upgrade_fee_pence
            if not upgraded:
                notes.append("Delivery upgraded")
            reply = f"I can upgrade delivery. Updated terms: {_terms_text(offer, price, delivery, True)}."
        else:
            reply = f"I can’t upgrade delivery on this one. Current terms remain: {_terms_text(offer, price, delivery, upgraded)}."
    elif _contains_any(text, DISCOUNT_WORDS):
        target = max(offer.policy.min_price_pence, price - offer.policy.max_discount_pence)
        if not _is_live(offer) and target < price:
            price = target
            notes.append("Price adjusted")
            reply = f"I can improve the price slightly. Updated terms: {_terms_text(offer, price, delivery, upgraded)}."
        else:
            reply = f"I’m already at the best price I can do for this. Current terms: {_terms_text(offer, price, delivery, upgraded)}."
    else:
        reply = (
            f"Understood. Current terms are {_terms_text(offer, price, delivery, upgraded)}. "
            "Ask for delivery speed or price if you want changes."
        )

    events.append(_event("Seller assistant", reply, now))
    return t.model_copy(update={
        "status": "AGREED",
        "events": events,
        "terms": Terms(price_pence=price, delivery_days=delivery, notes=notes),
    })


def confirm_thread(t: InternalThread) -> InternalThread:
    now = _now_iso()
    if t.status != "AGREED":
        events = [*t.events, _event("Your assistant", "We need clear agreed terms first. Ask a follow-up, then confirm.", now)]
        return t.model_copy(update={"events": events})

    events = [
        *t.events,
        _event("Your assistant", "Confirmed. Order placed and instantly acknowledged by the seller.", now),
        _event("Seller assistant", "Confirmed on my side. I’ll send tracking as soon as it ships.", now),
    ]
    return t.model_copy(update={"status": "COMPLETED", "confirmed": True, "events": events})

# --- presentation -----------------------------------------------------------

def _elapsed_ms(t: InternalThread, now: datetime) -> float:
    created = datetime.fromisoformat(t.created_at)
    return (now - created).total_seconds() * 1000.0


def visible_offers(t: InternalThread, now: datetime) -> List[Offer]:
    elapsed = _elapsed_ms(t, now)
    return sorted((o for o in t.offers if elapsed >= o.arrival_delay_ms), key=lambda o: o.arrival_delay_ms)


def ui_offer(o: Offer) -> Dict[str, Any]:
    return {
        "id": o.id,
        "sellerName": o.seller_name,
        "headline": o.headline,
        "imageUrl": o.image_url,
        "productUrl": o.product_url,
        "sourceLabel": o.source_label,
        "priceText": offer_price_text(o),
        "deliveryText": delivery_text(o.delivery_days),
        "reliabilityLabel": o.reliability_label,
        "fastReplyLabel": "Replies fast" if o.reply_class == "fast" else "Normal reply",
    }


_STAGE_LABELS = {
    "COLLECTING_OFFERS": "Collecting offers",
    "OFFER_SELECTED": "Conversation opened",
    "AGREED": "Ready to confirm",
    "COMPLETED": "Completed",
}

def kpis(t: InternalThread, now: datetime) -> Dict[str, Any]:
    no_matches = t.acquisition_done and not t.offers
    stage = _STAGE_LABELS[t.status]
    if no_matches and t.status == "COLLECTING_OFFERS":
        stage = "No matching offers right now"
    return {
        "elapsedSeconds": max(0.0, _elapsed_ms(t, now) / 1000.0),
        "offersCount": len(visible_offers(t, now)),
        "stageLabel": stage,
        "confirmed": t.confirmed,
        "category": CATEGORY_LABELS.get(t.category, CATEGORY_LABELS[CATEGORY_OTHER]),
        "noMatches": no_matches,
    }


def to_ui(t: InternalThread, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    return {
        "threadId": t.thread_id,
        "status": t.status,
        "requestText": t.request_text,
        "selectedOfferId": t.selected_offer_id,
        "offers": [ui_offer(o) for o in visible_offers(t, now)],
        "events": [e.model_dump() for e in t.events],
        "kpis": kpis(t, now),
    }
